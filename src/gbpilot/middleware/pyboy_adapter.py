"""
PyBoy-based implementation of the GameDevice interface.

The emulator runs on a background thread that keeps calling ``tick()``. Every
interaction with the PyBoy instance (ticking, input, screen, memory) is
serialised through one lock, so the controller thread and the ticking thread
never touch the emulator at the same time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np

try:
    from pyboy import PyBoy
    from pyboy.utils import WindowEvent
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    PyBoy = None  # type: ignore[assignment]
    WindowEvent = None  # type: ignore[assignment]

from gbpilot.core.types import Button
from gbpilot.errors import DeviceError

from .device import GameDevice

logger = logging.getLogger(__name__)

if WindowEvent is not None:
    # Explicit press/release event pairs per button.
    PYBOY_BUTTONS: Dict[Button, Tuple[Any, Any]] = {
        Button.UP: (WindowEvent.PRESS_ARROW_UP, WindowEvent.RELEASE_ARROW_UP),
        Button.DOWN: (WindowEvent.PRESS_ARROW_DOWN, WindowEvent.RELEASE_ARROW_DOWN),
        Button.LEFT: (WindowEvent.PRESS_ARROW_LEFT, WindowEvent.RELEASE_ARROW_LEFT),
        Button.RIGHT: (WindowEvent.PRESS_ARROW_RIGHT, WindowEvent.RELEASE_ARROW_RIGHT),
        Button.A: (WindowEvent.PRESS_BUTTON_A, WindowEvent.RELEASE_BUTTON_A),
        Button.B: (WindowEvent.PRESS_BUTTON_B, WindowEvent.RELEASE_BUTTON_B),
        Button.START: (WindowEvent.PRESS_BUTTON_START, WindowEvent.RELEASE_BUTTON_START),
        Button.SELECT: (WindowEvent.PRESS_BUTTON_SELECT, WindowEvent.RELEASE_BUTTON_SELECT),
    }
else:  # pragma: no cover - only reachable without PyBoy installed
    PYBOY_BUTTONS = {}


@dataclass
class PyBoyConfig:
    """Runtime configuration for the PyBoyDevice."""

    rom_path: str
    window_type: str = "null"
    speed: float = 1.0  # 0 = unlimited
    title: Optional[str] = None  # overrides the cartridge header title
    sound: bool = False


class PyBoyDevice(GameDevice):
    """
    Concrete device that runs a ROM in PyBoy.

    Example:
        device = PyBoyDevice(PyBoyConfig(rom_path="SuperMarioLand.gb"))
        device.start()
        frame = device.capture_frame()
    """

    def __init__(self, config: PyBoyConfig, *, pyboy: Any = None) -> None:
        self.config = config
        if pyboy is None:
            if PyBoy is None:  # pragma: no cover
                raise DeviceError("pyboy package not found. Install pyboy to use this adapter.")
            try:
                pyboy = PyBoy(config.rom_path, window=config.window_type, sound_emulated=config.sound)
            except Exception as exc:
                raise DeviceError(f"Unable to load ROM {config.rom_path}: {exc}") from exc
        self.pyboy = pyboy
        self.pyboy.set_emulation_speed(config.speed)
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        if self._running:
            return
        self._stop.clear()
        self._running = True
        self._thread = threading.Thread(target=self._run, name="pyboy-ticker", daemon=True)
        self._thread.start()
        logger.info("Emulator started: %s", self.title)

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                with self._lock:
                    alive = self.pyboy.tick()
                if alive is False:
                    logger.info("Emulator window closed")
                    break
        except Exception:
            logger.exception("Emulator loop crashed")
        finally:
            self._running = False

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._thread = None
        self._running = False

    def close(self) -> None:
        self.stop()
        with self._lock:
            try:
                self.pyboy.stop(save=False)
            except Exception as exc:
                logger.warning("Failed to stop PyBoy cleanly: %s", exc)

    # ------------------------------------------------------------------ #
    # GameDevice API
    # ------------------------------------------------------------------ #

    @property
    def title(self) -> str:
        if self.config.title:
            return self.config.title
        return str(getattr(self.pyboy, "cartridge_title", "") or "").strip()

    def is_running(self) -> bool:
        return self._running

    def capture_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            try:
                image = self.pyboy.screen.image
            except Exception as exc:
                logger.warning("Frame capture failed: %s", exc)
                return None
            if image is None:
                return None
            frame_array = np.array(image)
        if frame_array.ndim == 2:
            frame_array = np.repeat(frame_array[:, :, None], 3, axis=2)
        elif frame_array.ndim == 3 and frame_array.shape[2] == 4:
            frame_array = frame_array[:, :, :3]
        return frame_array.astype(np.uint8, copy=False)

    def press_button(self, button: Button) -> None:
        self._send(button, pressed=True)

    def release_button(self, button: Button) -> None:
        self._send(button, pressed=False)

    def read_u8(self, address: int) -> int:
        with self._lock:
            return int(self.pyboy.memory[address]) & 0xFF

    def _send(self, button: Button, *, pressed: bool) -> None:
        events = PYBOY_BUTTONS.get(button)
        if events is None:
            raise DeviceError(f"Unknown button '{button}'")
        with self._lock:
            self.pyboy.send_input(events[0] if pressed else events[1])


__all__ = ["PYBOY_BUTTONS", "PyBoyConfig", "PyBoyDevice"]
