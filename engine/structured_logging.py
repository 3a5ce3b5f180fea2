"""JSONL event log: one record per finished action."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import IO, Any, Dict, Optional

log = logging.getLogger(__name__)


@dataclass(slots=True)
class LogPaths:
    base: Path
    events: Path


@dataclass(slots=True)
class EventRecord:
    run_id: str
    step: int
    action: Dict[str, Any]
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    diagnostic: Optional[str] = None
    polls: int = 0
    restarts: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    ts: float = field(default_factory=time.time)

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)


class StructuredLogger:
    """Appends :class:`EventRecord` lines to ``events.jsonl`` of one run."""

    def __init__(self, run_id: str, paths: LogPaths) -> None:
        self.run_id = run_id
        self.paths = paths
        self.step = 0
        self._stream: IO[str] = paths.events.open("a", encoding="utf-8")

    def log_event(
        self,
        *,
        action: Dict[str, Any],
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        diagnostic: Optional[str] = None,
        polls: int = 0,
        restarts: int = 0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        self.step += 1
        record = EventRecord(
            run_id=self.run_id,
            step=self.step,
            action=action,
            result=result,
            error=error,
            diagnostic=diagnostic,
            polls=polls,
            restarts=restarts,
            metadata=dict(metadata or {}),
        )
        self._stream.write(record.to_json() + "\n")
        self._stream.flush()
        return record.step

    def close(self) -> None:
        if self._stream.closed:
            return
        try:
            self._stream.close()
        except OSError as exc:
            log.warning("Could not close %s: %s", self.paths.events, exc)

    def __enter__(self) -> "StructuredLogger":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def prepare_log_paths(run_id: str, base_dir: Path) -> LogPaths:
    run_dir = Path(base_dir) / run_id
    run_dir.mkdir(parents=True, exist_ok=True)
    return LogPaths(base=run_dir, events=run_dir / "events.jsonl")
