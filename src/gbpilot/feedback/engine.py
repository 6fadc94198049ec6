"""
Feedback engine: turns raw game signals into reward and feedback text.

The engine owns the loaded profiles, the detector set (cooldowns and memory
trackers) and the running episode total. One engine serves one controller.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from numpy.typing import NDArray

from .detectors import DetectorCapabilities, DetectorSet
from .profile import GameFeedbackProfile, load_profile_dir, load_profile_file
from .types import EventSource, FeedbackResult, GameEvent, PollContext

logger = logging.getLogger(__name__)

NO_PROFILE_LINE = "No feedback profile active for this game."


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


def format_reward(value: float) -> str:
    return f"{value:+.2f}"


def format_event_line(event: GameEvent, reward: float) -> str:
    line = event.type
    if event.data:
        line += f" ({json.dumps(dict(event.data), sort_keys=True, default=str)})"
    if reward != 0:
        line += f", Reward: {format_reward(reward)}"
    return line


class FeedbackEngine:
    """
    Evaluates the active profile's detectors and rules once per poll.

    Parameters
    ----------
    profiles:
        Initial profiles, in priority order.
    capabilities:
        Memory reader, text recogniser and image matcher used by detectors.
    clock:
        Millisecond clock used when a poll context carries no timestamp.
    """

    def __init__(
        self,
        profiles: Optional[Iterable[GameFeedbackProfile]] = None,
        *,
        capabilities: Optional[DetectorCapabilities] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._profiles: List[GameFeedbackProfile] = []
        self._active: Optional[GameFeedbackProfile] = None
        self._detector_set = DetectorSet(capabilities or DetectorCapabilities())
        self._clock = clock or _monotonic_ms
        self._episode_total = 0.0
        self._manual_events: List[GameEvent] = []
        self._lock = threading.RLock()
        for profile in profiles or ():
            self.load_profile(profile)

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def capabilities(self) -> DetectorCapabilities:
        return self._detector_set.capabilities

    @property
    def profiles(self) -> List[GameFeedbackProfile]:
        with self._lock:
            return list(self._profiles)

    @property
    def active_profile(self) -> Optional[GameFeedbackProfile]:
        return self._active

    @property
    def episode_total(self) -> float:
        return self._episode_total

    # ------------------------------------------------------------------ #
    # Profile management
    # ------------------------------------------------------------------ #

    def load_profile(self, profile: GameFeedbackProfile) -> None:
        """Insert or replace the profile with the same ``title_pattern``."""

        with self._lock:
            for index, existing in enumerate(self._profiles):
                if existing.title_pattern == profile.title_pattern:
                    self._profiles[index] = profile
                    logger.info("Replaced feedback profile for pattern %r", profile.title_pattern)
                    break
            else:
                self._profiles.append(profile)
                logger.info("Loaded feedback profile for pattern %r", profile.title_pattern)
            if self._active is not None and self._active.title_pattern == profile.title_pattern:
                self._active = profile

    def load_profiles(self, profiles: Iterable[GameFeedbackProfile]) -> None:
        for profile in profiles:
            self.load_profile(profile)

    def load_profile_file(self, path: Union[str, Path]) -> GameFeedbackProfile:
        profile = load_profile_file(path)
        self.load_profile(profile)
        return profile

    def load_profile_dir(self, path: Union[str, Path]) -> List[GameFeedbackProfile]:
        profiles = load_profile_dir(path)
        self.load_profiles(profiles)
        return profiles

    def resolve_profile(self, title: str) -> Optional[GameFeedbackProfile]:
        """Return the first loaded profile matching ``title``."""

        with self._lock:
            matches = [profile for profile in self._profiles if profile.matches(title)]
        if len(matches) > 1:
            logger.warning(
                "Title %r matches %d feedback profiles (%s); using %r",
                title,
                len(matches),
                ", ".join(repr(profile.title_pattern) for profile in matches),
                matches[0].title_pattern,
            )
        return matches[0] if matches else None

    def select_profile(self, title: str) -> Optional[GameFeedbackProfile]:
        profile = self.resolve_profile(title)
        with self._lock:
            if profile is not self._active:
                if profile is None:
                    logger.info("No feedback profile matches title %r", title)
                else:
                    logger.info("Activated feedback profile %r for title %r", profile.title_pattern, title)
            self._active = profile
        return profile

    def reset_episode(self, title: Optional[str] = None) -> None:
        with self._lock:
            self._episode_total = 0.0
            self._detector_set.reset_cooldowns()
            self._manual_events.clear()
        logger.info("Feedback episode reset")
        if title is not None:
            self.select_profile(title)

    # ------------------------------------------------------------------ #
    # Polling
    # ------------------------------------------------------------------ #

    def record_manual_event(self, event_type: str, data: Optional[Mapping[str, Any]] = None) -> None:
        """Queue an event reported and scored by the next poll."""

        with self._lock:
            self._manual_events.append(
                GameEvent(event_type, self._clock(), EventSource.MANUAL, dict(data) if data else None)
            )

    def poll(self, context: PollContext, frame: Optional[NDArray] = None) -> FeedbackResult:
        active = self._active
        if active is None or not active.matches(context.title):
            active = self.select_profile(context.title)
        if active is None:
            return FeedbackResult(text_lines=[NO_PROFILE_LINE], episode_total=self._episode_total)

        now_ms = context.timestamp_ms if context.timestamp_ms is not None else self._clock()
        with self._lock:
            events = self._detector_set.run(active.detectors, frame, now_ms)
            if self._manual_events:
                events.extend(self._manual_events)
                self._manual_events.clear()

            lines: List[str] = []
            total = 0.0
            for event in events:
                reward = sum(rule.amount(event) for rule in active.rules_for(event.type) if rule.applies_to(event))
                total += reward
                lines.append(format_event_line(event, reward))

            if not events and active.default_reward_for_silence:
                total += active.default_reward_for_silence
                lines.append(f"Default reward applied: {format_reward(active.default_reward_for_silence)}")

            self._episode_total += total
            episode_total = self._episode_total

        logger.debug("Feedback poll: %d events, reward %.2f, episode %.2f", len(events), total, episode_total)
        return FeedbackResult(text_lines=lines, reward=total, events=events, episode_total=episode_total)


__all__ = ["FeedbackEngine", "NO_PROFILE_LINE", "format_event_line", "format_reward"]
