"""
PersistenceStrategy interface for pluggable storage backends.

The decision engine itself performs no I/O. The orchestrator hands each tick's
events and population snapshot, plus the final summary, to an injected
PersistenceStrategy. Persistence is OPTIONAL: the default InMemoryPersistence
keeps everything in dicts.

Two included implementations:
1. InMemoryPersistence - Dict-based storage, data lost on exit (testing, prototyping)
2. JsonPersistence - File-based storage, human-readable JSON (small simulations)

Usage pattern:
    persistence = JsonPersistence("simulation_runs")
    model = ConsumerChoiceModel(config, environment, transformer, persistence=persistence)
    summary = await model.run()   # initialize()/close() are called by run()

    events = await persistence.get_events(config.model_id, tick=3)
"""

import asyncio
import json
import shutil
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .config import Config
from .schemas import Event, PopulationSnapshot, RunStatus, Summary


class SimulationRun(BaseModel):
    """Run metadata stored alongside the event log."""

    run_id: str
    name: str
    description: str = ""
    seed: int = 0
    max_ticks: int = 0
    agent_count: int = 0
    status: RunStatus = RunStatus.CREATED
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    transformer: List[Dict] = Field(
        default_factory=list, description="Transformer.describe() at run start"
    )


class PersistenceStrategy(ABC):
    """Abstract base class for simulation output persistence.

    All methods are async so file or database backends never block the tick
    loop. initialize() and close() manage backend lifecycle.

    Method categories:
    1. Lifecycle: initialize(), close()
    2. Run metadata: save_run_metadata(), get_run_metadata(), update_run_status()
    3. Events: save_events(), get_events()
    4. Population snapshots: save_snapshot(), get_snapshot()
    5. Summary: save_summary(), get_summary()
    6. Cleanup: delete_run()
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backend (create directories, open connections)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources. Stored data stays readable."""
        pass

    @abstractmethod
    async def save_run_metadata(self, run: SimulationRun) -> None:
        pass

    @abstractmethod
    async def get_run_metadata(self, run_id: str) -> Optional[SimulationRun]:
        pass

    @abstractmethod
    async def update_run_status(
        self, run_id: str, status: RunStatus, end_time: Optional[datetime] = None
    ) -> None:
        pass

    @abstractmethod
    async def save_events(self, run_id: str, tick: int, events: List[Event]) -> None:
        """Append events recorded during ``tick`` (order preserved)."""
        pass

    @abstractmethod
    async def get_events(self, run_id: str, tick: Optional[int] = None) -> List[Event]:
        """Return events for one tick, or the whole log ordered by sequence."""
        pass

    @abstractmethod
    async def save_snapshot(self, run_id: str, tick: int, snapshot: PopulationSnapshot) -> None:
        pass

    @abstractmethod
    async def get_snapshot(self, run_id: str, tick: int) -> Optional[PopulationSnapshot]:
        pass

    @abstractmethod
    async def save_summary(self, run_id: str, summary: Summary) -> None:
        pass

    @abstractmethod
    async def get_summary(self, run_id: str) -> Optional[Summary]:
        pass

    @abstractmethod
    async def delete_run(self, run_id: str) -> None:
        """Delete run metadata, events, snapshots and summary."""
        pass


class InMemoryPersistence(PersistenceStrategy):
    """In-memory persistence using Python dicts (no database, no files).

    Storage structure:
    - runs: Dict[run_id, SimulationRun]
    - events: Dict[(run_id, tick), List[Event]]
    - snapshots: Dict[(run_id, tick), PopulationSnapshot]
    - summaries: Dict[run_id, Summary]

    close() does NOT clear data so callers can read results after a run.
    """

    def __init__(self):
        self.runs: Dict[str, SimulationRun] = {}
        self.events: Dict[tuple[str, int], List[Event]] = {}
        self.snapshots: Dict[tuple[str, int], PopulationSnapshot] = {}
        self.summaries: Dict[str, Summary] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def save_run_metadata(self, run: SimulationRun) -> None:
        self.runs[run.run_id] = run

    async def get_run_metadata(self, run_id: str) -> Optional[SimulationRun]:
        return self.runs.get(run_id)

    async def update_run_status(
        self, run_id: str, status: RunStatus, end_time: Optional[datetime] = None
    ) -> None:
        run = self.runs.get(run_id)
        if run is None:
            return
        update: Dict = {"status": status}
        if end_time:
            update["end_time"] = end_time
        self.runs[run_id] = run.model_copy(update=update)

    async def save_events(self, run_id: str, tick: int, events: List[Event]) -> None:
        self.events.setdefault((run_id, tick), []).extend(events)

    async def get_events(self, run_id: str, tick: Optional[int] = None) -> List[Event]:
        if tick is not None:
            return list(self.events.get((run_id, tick), []))
        collected = [
            event
            for (stored_run, _), events in self.events.items()
            if stored_run == run_id
            for event in events
        ]
        return sorted(collected, key=lambda event: event.sequence or 0)

    async def save_snapshot(self, run_id: str, tick: int, snapshot: PopulationSnapshot) -> None:
        self.snapshots[(run_id, tick)] = snapshot

    async def get_snapshot(self, run_id: str, tick: int) -> Optional[PopulationSnapshot]:
        return self.snapshots.get((run_id, tick))

    async def save_summary(self, run_id: str, summary: Summary) -> None:
        self.summaries[run_id] = summary

    async def get_summary(self, run_id: str) -> Optional[Summary]:
        return self.summaries.get(run_id)

    async def delete_run(self, run_id: str) -> None:
        self.runs.pop(run_id, None)
        self.summaries.pop(run_id, None)
        for key in [key for key in self.events if key[0] == run_id]:
            del self.events[key]
        for key in [key for key in self.snapshots if key[0] == run_id]:
            del self.snapshots[key]


class JsonPersistence(PersistenceStrategy):
    """File-based persistence using JSON for human-readable storage.

    Directory structure:
    ```
    {base_path}/
      {run_id}/
        run.json                  # SimulationRun metadata
        summary.json              # Summary (written when the run ends)
        events/
          00000.jsonl             # events recorded during tick 0 (setup)
          00001.jsonl
        snapshots/
          00001.json              # PopulationSnapshot after tick 1
    ```

    Events are JSONL (one event per line, append-only); everything else is
    pretty-printed JSON. All file I/O runs via asyncio.to_thread.
    """

    def __init__(self, base_path: Path | str | None = None):
        self.base_path = Path(base_path) if base_path is not None else Config.RUNS_DIR

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        # Nothing to clean up for JSON persistence
        return None

    async def save_run_metadata(self, run: SimulationRun) -> None:
        run_dir = self._run_dir(run.run_id)
        await asyncio.to_thread(run_dir.mkdir, parents=True, exist_ok=True)
        path = run_dir / "run.json"
        data = run.model_dump(mode="json")
        await asyncio.to_thread(path.write_text, json.dumps(data, indent=2), "utf-8")

    async def get_run_metadata(self, run_id: str) -> Optional[SimulationRun]:
        path = self._run_dir(run_id) / "run.json"
        if not path.exists():
            return None
        payload = await asyncio.to_thread(path.read_text, "utf-8")
        return SimulationRun.model_validate_json(payload)

    async def update_run_status(
        self, run_id: str, status: RunStatus, end_time: Optional[datetime] = None
    ) -> None:
        path = self._run_dir(run_id) / "run.json"
        if not path.exists():  # Nothing to update yet
            return

        def _update() -> None:
            payload = json.loads(path.read_text("utf-8"))
            payload["status"] = RunStatus(status).value
            payload["end_time"] = end_time.isoformat() if end_time else None
            path.write_text(json.dumps(payload, indent=2), "utf-8")

        await asyncio.to_thread(_update)

    async def save_events(self, run_id: str, tick: int, events: List[Event]) -> None:
        if not events:
            return
        directory = self._run_dir(run_id) / "events"
        await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
        path = directory / f"{tick:05d}.jsonl"
        lines = [event.model_dump_json() for event in events]

        def _append() -> None:
            with path.open("a", encoding="utf-8") as handle:
                for line in lines:
                    handle.write(line)
                    handle.write("\n")

        await asyncio.to_thread(_append)

    async def get_events(self, run_id: str, tick: Optional[int] = None) -> List[Event]:
        directory = self._run_dir(run_id) / "events"
        if tick is not None:
            paths = [directory / f"{tick:05d}.jsonl"]
        elif directory.exists():
            paths = sorted(directory.glob("*.jsonl"))
        else:
            paths = []

        def _read() -> List[str]:
            lines: List[str] = []
            for path in paths:
                if path.exists():
                    lines.extend(path.read_text("utf-8").splitlines())
            return lines

        lines = await asyncio.to_thread(_read)
        events = [Event.model_validate_json(line) for line in lines if line]
        return sorted(events, key=lambda event: event.sequence or 0)

    async def save_snapshot(self, run_id: str, tick: int, snapshot: PopulationSnapshot) -> None:
        path = self._run_dir(run_id) / "snapshots" / f"{tick:05d}.json"
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        payload = snapshot.model_dump(mode="json")
        await asyncio.to_thread(path.write_text, json.dumps(payload, indent=2), "utf-8")

    async def get_snapshot(self, run_id: str, tick: int) -> Optional[PopulationSnapshot]:
        path = self._run_dir(run_id) / "snapshots" / f"{tick:05d}.json"
        if not path.exists():
            return None
        payload = await asyncio.to_thread(path.read_text, "utf-8")
        return PopulationSnapshot.model_validate_json(payload)

    async def save_summary(self, run_id: str, summary: Summary) -> None:
        run_dir = self._run_dir(run_id)
        await asyncio.to_thread(run_dir.mkdir, parents=True, exist_ok=True)
        path = run_dir / "summary.json"
        await asyncio.to_thread(
            path.write_text, json.dumps(summary.model_dump(mode="json"), indent=2), "utf-8"
        )

    async def get_summary(self, run_id: str) -> Optional[Summary]:
        path = self._run_dir(run_id) / "summary.json"
        if not path.exists():
            return None
        payload = await asyncio.to_thread(path.read_text, "utf-8")
        return Summary.model_validate_json(payload)

    async def delete_run(self, run_id: str) -> None:
        run_dir = self._run_dir(run_id)
        if run_dir.exists():
            await asyncio.to_thread(shutil.rmtree, run_dir)

    def _run_dir(self, run_id: str) -> Path:
        return self.base_path / str(run_id)


__all__ = ["SimulationRun", "PersistenceStrategy", "InMemoryPersistence", "JsonPersistence"]
