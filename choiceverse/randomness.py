"""Call-scoped random sources.

Every stochastic component receives its own ``random.Random`` seeded from the
run seed plus the coordinates of the call (tick, agent, call site). Two runs
with the same seed therefore draw identical sequences no matter how agent
work is scheduled across threads.

Derivation: BLAKE2b over ``"seed|tick|agent|call_site"`` truncated to 64 bits.
"""

from __future__ import annotations

import hashlib
import random
from typing import Optional

CALL_SITE_PIPELINE = "pipeline"
CALL_SITE_CHOICE = "choice"
CALL_SITE_ENVIRONMENT = "environment"


def derive_seed(run_seed: int, tick: int, agent_id: Optional[str], call_site: str) -> int:
    """Return a 64-bit seed for the given call coordinates."""

    key = f"{run_seed}|{tick}|{agent_id or '-'}|{call_site}".encode("utf-8")
    digest = hashlib.blake2b(key, digest_size=8).digest()
    return int.from_bytes(digest, "big")


def derive_rng(
    run_seed: int, tick: int, agent_id: Optional[str], call_site: str
) -> random.Random:
    """Return a fresh Random seeded from (run_seed, tick, agent_id, call_site)."""

    return random.Random(derive_seed(run_seed, tick, agent_id, call_site))


__all__ = [
    "derive_seed",
    "derive_rng",
    "CALL_SITE_PIPELINE",
    "CALL_SITE_CHOICE",
    "CALL_SITE_ENVIRONMENT",
]
