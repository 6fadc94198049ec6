"""Action execution and the cycle orchestrator."""

from .config import ControllerConfig
from .executor import ActionExecutor, ButtonState
from .orchestrator import ControllerStatus, CycleController, CycleResult
from .timer import IntervalTimer, ManualTimer
from .trace import CycleTraceRecorder

__all__ = [
    "ActionExecutor",
    "ButtonState",
    "ControllerConfig",
    "ControllerStatus",
    "CycleController",
    "CycleResult",
    "CycleTraceRecorder",
    "IntervalTimer",
    "ManualTimer",
]
