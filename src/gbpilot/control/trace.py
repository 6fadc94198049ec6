"""Per-cycle JSONL trace of the controller."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from jsonschema import Draft7Validator

from gbpilot.errors import GbPilotError

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "cycle_trace.json"


def _load_schema() -> Draft7Validator:
    with SCHEMA_PATH.open("r", encoding="utf-8") as handle:
        schema = json.load(handle)
    return Draft7Validator(schema)


_TRACE_VALIDATOR = _load_schema()


class TraceValidationError(GbPilotError):
    """A cycle record does not match ``schemas/cycle_trace.json``."""

    def __init__(self, message: str, *, errors: List[str]) -> None:
        super().__init__(message)
        self.errors = errors


class CycleTraceRecorder:
    """Validates each cycle record and appends it as one JSON line to ``path``."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._handle = self.path.open("a", encoding="utf-8")

    def record(self, payload: Mapping[str, Any]) -> None:
        errors = [error.message for error in _TRACE_VALIDATOR.iter_errors(payload)]
        if errors:
            raise TraceValidationError("Cycle record failed validation.", errors=errors)
        line = json.dumps(payload, ensure_ascii=False)
        with self._lock:
            self._handle.write(line + "\n")
            self._handle.flush()

    def close(self) -> None:
        with self._lock:
            if not self._handle.closed:
                self._handle.close()


def read_trace(path: Union[str, Path]) -> List[Dict[str, Any]]:
    with Path(path).open("r", encoding="utf-8") as handle:
        return [json.loads(line) for line in handle if line.strip()]


__all__ = ["CycleTraceRecorder", "SCHEMA_PATH", "TraceValidationError", "read_trace"]
