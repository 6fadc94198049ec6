"""Emulator adapters."""

from .device import GameDevice
from .pyboy_adapter import PyBoyConfig, PyBoyDevice

__all__ = ["GameDevice", "PyBoyConfig", "PyBoyDevice"]
