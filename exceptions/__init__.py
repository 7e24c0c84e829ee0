from __future__ import annotations

from enum import Enum


class BotError(Exception):
    """Base bot exception."""


class PermissionDenied(BotError):
    """Raised when user lacks proper permission."""


class ConfigMissing(BotError):
    """Raised when a guild has no usable setup (server id + API token)."""

    def __init__(self, guild_id: str | int | None = None):
        self.guild_id = guild_id
        super().__init__(f"guild {guild_id} is not configured")


class ValidationError(BotError):
    """Bad user input; the message is shown to the user as-is."""


class ApiErrorKind(str, Enum):
    OFFLINE = "offline"
    AUTH = "auth"
    NETWORK = "network"
    TIMEOUT = "timeout"
    REJECTED = "rejected"


class ExternalApiError(BotError):
    """Raised when the upstream RCON API fails."""

    def __init__(self, status: int | None, reason: str, kind: ApiErrorKind):
        self.status = status
        self.reason = reason
        self.kind = kind
        super().__init__(f"{kind.value}: {reason}" + (f" (HTTP {status})" if status else ""))


class WizardTimeout(BotError):
    """Raised when an interactive prompt gets no answer in time."""

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"no answer for {step!r}")


class WizardCancelled(BotError):
    """Raised when the user types `cancel` in an interactive prompt."""
