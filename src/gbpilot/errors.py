"""Exception hierarchy shared across the controller packages."""

from __future__ import annotations

from typing import Optional, Sequence


class GbPilotError(RuntimeError):
    """Base class for all controller errors."""


class ProfileValidationError(GbPilotError):
    """Raised when a feedback profile does not satisfy the profile schema."""

    def __init__(self, message: str, *, errors: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class ModelCallError(GbPilotError):
    """Raised when the model endpoint fails (network, auth, rate limit, empty reply)."""


class DeviceError(GbPilotError):
    """Raised when the emulator adapter cannot service a request."""


class ConfigurationError(GbPilotError):
    """Raised when the controller is started without a usable configuration."""


__all__ = [
    "ConfigurationError",
    "DeviceError",
    "GbPilotError",
    "ModelCallError",
    "ProfileValidationError",
]
