"""Console output for choiceverse runs.

Every progress line carries a bracket tag as well as a color, so a run log
reads the same with CHOICEVERSE_NO_COLOR set:

    [•]  engine work with no model in the loop (environment, pipeline)
    [AI] an LLMChoiceModule call or retry
    [!]  a failed decision, a fatal violation or a halted run
    [✓]  a finished tick or a completed run
    [i]  warnings and per-decision detail

Two switches control volume: CHOICEVERSE_QUIET silences the orchestrator
entirely; CHOICEVERSE_VERBOSE adds one line per decision.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI codes used by the tags."""

    BLUE = "\033[94m"      # Environment updates, pipeline
    YELLOW = "\033[93m"    # LLM choice calls
    RED = "\033[91m"       # Failed decisions, fatal violations, halts
    GREEN = "\033[92m"     # Tick summaries, completed runs
    CYAN = "\033[96m"      # Warnings, per-decision lines

    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap ``text`` in ANSI codes unless CHOICEVERSE_NO_COLOR is set."""
    if os.getenv("CHOICEVERSE_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def is_quiet() -> bool:
    return bool(os.getenv("CHOICEVERSE_QUIET"))


def is_verbose() -> bool:
    """Per-decision lines; quiet wins over verbose."""
    return bool(os.getenv("CHOICEVERSE_VERBOSE")) and not is_quiet()


def log_deterministic(message: str) -> None:
    print(colored(message, Color.BLUE))


def log_llm(message: str) -> None:
    print(colored(message, Color.YELLOW))


def log_error(message: str) -> None:
    print(colored(message, Color.RED))


def log_success(message: str) -> None:
    print(colored(message, Color.GREEN))


def log_info(message: str) -> None:
    print(colored(message, Color.CYAN))


LOG_TAG_DETERMINISTIC = "[•]"
LOG_TAG_LLM = "[AI]"
LOG_TAG_ERROR = "[!]"
LOG_TAG_SUCCESS = "[✓]"
LOG_TAG_INFO = "[i]"
