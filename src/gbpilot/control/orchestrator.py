"""
Closed-loop cycle controller.

One ``CycleController`` drives one emulator: every ``capture_interval_ms`` it
captures a frame, polls the feedback engine, builds a prompt, asks the model
for an action and executes it. Ticks that arrive while a cycle is in flight
are dropped, never queued.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from gbpilot.core.types import ActionHistory, ActionRecord, Button, ParsedAction
from gbpilot.errors import DeviceError, ModelCallError
from gbpilot.feedback.detectors import DetectorCapabilities
from gbpilot.feedback.engine import FeedbackEngine
from gbpilot.feedback.profile import GameFeedbackProfile
from gbpilot.feedback.types import FeedbackResult, PollContext
from gbpilot.knowledge.notes import NotesStore
from gbpilot.llm.llm_client import DEFAULT_USER_TEXT, LLMClient
from gbpilot.middleware.device import GameDevice
from gbpilot.prompting.prompt_builder import MAX_PROMPT_ACTIONS, build_custom_system_message, build_prompt
from gbpilot.prompting.registry import Goal, GoalRegistry, SystemPromptRegistry
from gbpilot.prompting.response_parser import parse_response

from .config import ControllerConfig
from .executor import ActionExecutor
from .timer import IntervalTimer, Timer
from .trace import CycleTraceRecorder

logger = logging.getLogger(__name__)

CAPTURE_FAILED = "Failed to capture screen data."
MISSING_CREDENTIALS = "API key or model name is missing."


class ControllerStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    ERROR = "error"


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one controller cycle."""

    status: ControllerStatus
    action: Optional[ParsedAction] = None
    rationale: str = ""
    feedback: Optional[FeedbackResult] = None
    error: Optional[str] = None
    reward: float = 0.0


class CycleController:
    """
    Paces observation, feedback, model call and action execution.

    Parameters
    ----------
    device:
        Emulator adapter providing frames, input and memory.
    client:
        Model client; ``client.ask`` receives the built prompt and the frame.
    engine:
        Feedback engine. A fresh one is built per controller when omitted.
    notes:
        Optional notes store summarised into the prompt each cycle.
    timer:
        Interval timer; tests inject ``ManualTimer``.
    """

    def __init__(
        self,
        device: GameDevice,
        client: LLMClient,
        *,
        engine: Optional[FeedbackEngine] = None,
        goals: Optional[GoalRegistry] = None,
        prompts: Optional[SystemPromptRegistry] = None,
        notes: Optional[NotesStore] = None,
        executor: Optional[ActionExecutor] = None,
        config: Optional[ControllerConfig] = None,
        timer: Optional[Timer] = None,
        trace: Optional[CycleTraceRecorder] = None,
        on_status: Optional[Callable[[ControllerStatus, Optional[str]], None]] = None,
        on_action: Optional[Callable[[CycleResult], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        on_feedback: Optional[Callable[[FeedbackResult], None]] = None,
    ) -> None:
        self.device = device
        self.client = client
        self.config = config or ControllerConfig()
        self.engine = engine or FeedbackEngine(capabilities=DetectorCapabilities(read_u8=device.read_u8))
        if self.engine.capabilities.read_u8 is None:
            self.engine.capabilities.read_u8 = device.read_u8
        self.goals = goals or GoalRegistry()
        self.prompts = prompts or SystemPromptRegistry()
        self.notes = notes
        self.executor = executor or ActionExecutor(default_duration_ms=self.config.default_press_duration_ms)
        self.timer: Timer = timer or IntervalTimer()
        if trace is None and self.config.trace_path is not None:
            trace = CycleTraceRecorder(self.config.trace_path)
        self.trace = trace

        self.on_status = on_status
        self.on_action = on_action
        self.on_error = on_error
        self.on_feedback = on_feedback

        self.history = ActionHistory(capacity=self.config.history_capacity)
        self.status = ControllerStatus.INACTIVE
        self.last_action: Optional[Button] = None
        self.last_rationale = ""
        self.last_error: Optional[str] = None
        self.cycle_count = 0
        self.dropped_ticks = 0

        self._enabled = False
        self._armed = False
        self._reported_problem: Optional[str] = None
        self._cancel = threading.Event()
        self._guard = threading.Lock()
        self._state_lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def title(self) -> str:
        return self.config.title or self.device.title

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def busy(self) -> bool:
        return self._guard.locked()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "armed": self._armed,
            "title": self.title,
            "last_action": self.last_action.value if self.last_action else None,
            "last_rationale": self.last_rationale,
            "last_error": self.last_error,
            "episode_total": self.engine.episode_total,
            "cycles": self.cycle_count,
        }

    # ------------------------------------------------------------------ #
    # Arming
    # ------------------------------------------------------------------ #

    def enable(self) -> bool:
        """Request the Armed state; returns whether the controller armed."""

        with self._state_lock:
            self._enabled = True
            self._reported_problem = None
        return self.refresh()

    def disable(self) -> None:
        with self._state_lock:
            self._enabled = False
            self._disarm("disabled")

    def refresh(self) -> bool:
        """Re-evaluate the arming conditions; arms or disarms as needed."""

        with self._state_lock:
            if not self._enabled:
                self._disarm("disabled")
                return False
            if not self.device.is_running():
                self._disarm("emulator not running")
                return False
            problem = self._configuration_problem()
            if problem is not None:
                self._disarm(problem)
                if problem != self._reported_problem:
                    self._reported_problem = problem
                    self._report_error(problem)
                return False
            if self._armed:
                return True
            self._armed = True
            self._cancel.clear()
            self._set_status(ControllerStatus.ACTIVE, None)
            logger.info("Controller armed for %r every %d ms", self.title, self.config.capture_interval_ms)
        self.timer.start(self._on_tick, self.config.capture_interval_ms / 1000.0, immediate=True)
        with self._state_lock:
            # disable() may have run between arming and the timer starting.
            if not self._armed:
                self.timer.cancel()
            return self._armed

    def _configuration_problem(self) -> Optional[str]:
        if not self.client.has_credentials():
            return MISSING_CREDENTIALS
        if self.config.require_feedback_profile:
            title = self.title
            if self.engine.resolve_profile(title) is None:
                return f"No feedback profile matches game title '{title}'."
        return None

    def _disarm(self, reason: str) -> None:
        self._cancel.set()
        self.timer.cancel()
        was_armed = self._armed
        self._armed = False
        if was_armed:
            logger.info("Controller disarmed: %s", reason)
        if self.status is not ControllerStatus.ERROR or not self._enabled:
            self._set_status(ControllerStatus.INACTIVE, None)
        if not self._guard.locked():
            self._release_held()

    # ------------------------------------------------------------------ #
    # Ticks and cycles
    # ------------------------------------------------------------------ #

    def _on_tick(self) -> None:
        if self._cancel.is_set() or not self._armed:
            return
        if not self.device.is_running():
            with self._state_lock:
                self._disarm("emulator stopped")
            return
        if not self._guard.acquire(blocking=False):
            self.dropped_ticks += 1
            logger.warning("Dropping tick: previous cycle still running")
            return
        try:
            if self._cancel.is_set():
                return
            self.run_cycle()
        finally:
            self._guard.release()
        if not self._armed:
            self._release_held()

    def run_cycle(self) -> CycleResult:
        """Run one capture, feedback, prompt, model, execute pass."""

        self.cycle_count += 1
        try:
            result = self._cycle()
        except Exception as exc:
            logger.exception("Cycle %d failed unexpectedly", self.cycle_count)
            result = self._failure(f"Unexpected error: {exc}")
        self._record_trace(result)
        return result

    def _cycle(self) -> CycleResult:
        title = self.title
        frame = self.device.capture_frame()
        if frame is None:
            return self._failure(CAPTURE_FAILED)

        feedback = self.engine.poll(PollContext(title=title, last_action=self.last_action), frame)
        self._emit(self.on_feedback, feedback)

        prompt = build_prompt(
            self.prompts.active.body,
            feedback.text_lines,
            self.goals.active,
            self.config.game_context,
            self._notes_summary(title),
            self.history.recent(MAX_PROMPT_ACTIONS),
        )
        try:
            reply = self.client.ask(prompt, DEFAULT_USER_TEXT, frame)
        except ModelCallError as exc:
            return self._failure(str(exc), feedback=feedback)
        except Exception as exc:
            return self._failure(f"Model call failed: {exc}", feedback=feedback)

        action = parse_response(reply)
        if action.is_error:
            return self._failure(action.error or "Unparseable model reply.", feedback=feedback, action=action)

        try:
            self.executor.execute(action, self.device)
        except Exception as exc:
            logger.error("Action execution failed: %s", exc)
            return self._failure(f"Action execution failed: {exc}", feedback=feedback, action=action)

        self.history.append(ActionRecord(action.button, action.rationale))
        self.last_action = action.button
        self.last_rationale = action.rationale
        self.last_error = None
        self._record_observation(action, title)
        self._set_status(ControllerStatus.ACTIVE, None)

        result = CycleResult(
            status=ControllerStatus.ACTIVE,
            action=action,
            rationale=action.rationale,
            feedback=feedback,
            reward=feedback.reward,
        )
        logger.info("Cycle %d: %s (%s)", self.cycle_count, action.button.value, action.rationale or "no rationale")
        self._emit(self.on_action, result)
        return result

    def _failure(
        self,
        message: str,
        *,
        feedback: Optional[FeedbackResult] = None,
        action: Optional[ParsedAction] = None,
    ) -> CycleResult:
        logger.error("Cycle %d error: %s", self.cycle_count, message)
        self._report_error(message)
        return CycleResult(
            status=ControllerStatus.ERROR,
            action=action,
            rationale=action.rationale if action is not None else "",
            feedback=feedback,
            error=message,
            reward=feedback.reward if feedback is not None else 0.0,
        )

    # ------------------------------------------------------------------ #
    # Administrative calls
    # ------------------------------------------------------------------ #

    def ask(self, prompt_text: str) -> str:
        """
        Send a free-form question about the current screen.

        The reply is surfaced as rationale only; no button is pressed.
        """

        frame = self.device.capture_frame()
        if frame is None:
            self._report_error(CAPTURE_FAILED)
            raise DeviceError(CAPTURE_FAILED)
        feedback = self.engine.poll(PollContext(title=self.title, last_action=self.last_action), frame)
        system = build_custom_system_message(self.config.game_context or self.title, feedback.text_lines)
        try:
            reply = self.client.ask(system, prompt_text, frame)
        except ModelCallError as exc:
            self._report_error(str(exc))
            raise
        self.last_rationale = reply
        return reply

    def load_profile(self, profile: GameFeedbackProfile) -> None:
        self.engine.load_profile(profile)
        if self._enabled:
            self.refresh()

    def set_goal(self, description: Optional[str], extra_context: Optional[str] = None) -> Optional[Goal]:
        """Make ``description`` the active goal; ``None`` clears it."""

        if description is None:
            self.goals.set_active(None)
            return None
        return self.goals.add(description, extra_context=extra_context, activate=True)

    def set_system_prompt(self, prompt_id: str) -> bool:
        return self.prompts.set_active(prompt_id)

    def reset_episode(self) -> None:
        self.engine.reset_episode(self.title)

    def close(self) -> None:
        self.disable()
        self._release_held()
        if self.trace is not None:
            self.trace.close()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _set_status(self, status: ControllerStatus, message: Optional[str]) -> None:
        with self._state_lock:
            # A cycle finishing after disable() never revives the status.
            if not self._enabled:
                status = ControllerStatus.INACTIVE
            elif status is ControllerStatus.ACTIVE and not self._armed:
                status = ControllerStatus.INACTIVE
            changed = status is not self.status
            self.status = status
        if changed or message:
            self._emit(self.on_status, status, message)

    def _report_error(self, message: str) -> None:
        self.last_error = message
        self._set_status(ControllerStatus.ERROR, message)
        self._emit(self.on_error, message)

    def _release_held(self) -> None:
        try:
            self.executor.release_all(self.device)
        except Exception as exc:
            logger.warning("Failed to release held buttons: %s", exc)

    def _notes_summary(self, title: str) -> Optional[str]:
        if self.notes is None:
            return None
        try:
            return self.notes.summarize(title, self.config.notes_query)
        except Exception as exc:
            logger.warning("Notes summary failed: %s", exc)
            return None

    def _record_observation(self, action: ParsedAction, title: str) -> None:
        recorder = getattr(self.notes, "record_observation", None)
        if recorder is None or not action.rationale:
            return
        try:
            recorder(action.rationale, title, action.button)
        except Exception as exc:
            logger.warning("Failed to record observation: %s", exc)

    def _record_trace(self, result: CycleResult) -> None:
        if self.trace is None:
            return
        action = result.action
        sequence: List[Dict[str, Any]] = []
        if action is not None:
            sequence = [
                {"button": step.button.value, "phase": step.phase.value, "duration_ms": step.duration_ms}
                for step in action.sequence
            ]
        feedback = result.feedback
        payload = {
            "cycle": self.cycle_count,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "title": self.title,
            "status": result.status.value,
            "action": action.button.value if action is not None and not action.is_error else None,
            "sequence": sequence,
            "rationale": result.rationale,
            "reward": float(result.reward),
            "episode_total": float(feedback.episode_total if feedback is not None else self.engine.episode_total),
            "feedback": list(feedback.text_lines) if feedback is not None else [],
            "events": [event.type for event in feedback.events] if feedback is not None else [],
            "error": result.error,
        }
        try:
            self.trace.record(payload)
        except Exception as exc:
            logger.warning("Failed to write cycle trace: %s", exc)

    @staticmethod
    def _emit(callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Controller callback %r raised", callback)


__all__ = ["CAPTURE_FAILED", "ControllerStatus", "CycleController", "CycleResult", "MISSING_CREDENTIALS"]
