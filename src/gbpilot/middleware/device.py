"""Device interface the controller uses to drive an emulator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from numpy.typing import NDArray

from gbpilot.core.types import Button


class GameDevice(ABC):
    """
    Minimal abstraction over a running Game Boy emulator.

    A concrete implementation bridges to PyBoy (see ``pyboy_adapter``) or any
    other emulator able to hand out RGB frames, accept button edges and expose
    work RAM byte by byte.
    """

    @property
    @abstractmethod
    def title(self) -> str:
        """Title of the loaded game, used to select a feedback profile."""

    @abstractmethod
    def is_running(self) -> bool:
        """Return ``True`` while the emulator is advancing frames."""

    @abstractmethod
    def capture_frame(self) -> Optional[NDArray]:
        """Return the current screen as an ``(H, W, 3)`` uint8 array, or ``None``."""

    @abstractmethod
    def press_button(self, button: Button) -> None:
        """Start holding ``button``."""

    @abstractmethod
    def release_button(self, button: Button) -> None:
        """Stop holding ``button``."""

    @abstractmethod
    def read_u8(self, address: int) -> int:
        """Return an unsigned byte from emulator memory."""

    def close(self) -> None:
        """Release emulator resources."""


__all__ = ["GameDevice"]
