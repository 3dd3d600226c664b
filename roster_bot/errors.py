"""Exception types raised by the roster core.

None of these are fatal to the process. Configuration and state errors are
logged by the caller; validation and staging errors are shown to the
administrator who triggered them.
"""

from __future__ import annotations


class BotError(Exception):
    """Base class for every error raised by :mod:`roster_bot`."""


class ConfigLoadError(BotError):
    """A configuration file or directory could not be read."""

    def __init__(self, path: str, reason: object) -> None:
        self.path = path
        super().__init__(f"Failed to load config file '{path}': {reason}")


class ConfigParseError(BotError):
    """A configuration file exists but does not contain the expected JSON."""

    def __init__(self, path: str, reason: object) -> None:
        self.path = path
        super().__init__(f"Failed to parse config file '{path}': {reason}")


class ConfigValidationError(BotError):
    """Uploaded JSON has the wrong shape."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid config: {message}")


class ConfigNotFoundError(BotError):
    def __init__(self, config_type: str, name: str = "") -> None:
        self.config_type = config_type
        self.name = name
        super().__init__(f"Config not found: {config_type} '{name}'")


class StateLoadError(BotError):
    def __init__(self, path: str, reason: object) -> None:
        self.path = path
        super().__init__(f"Failed to load state from '{path}': {reason}")


class StateSaveError(BotError):
    def __init__(self, path: str, reason: object) -> None:
        self.path = path
        super().__init__(f"Failed to save state to '{path}': {reason}")


class NoStagedConfigError(BotError):
    def __init__(self) -> None:
        super().__init__("No staged configuration to commit")


__all__ = [
    "BotError",
    "ConfigLoadError",
    "ConfigParseError",
    "ConfigValidationError",
    "ConfigNotFoundError",
    "StateLoadError",
    "StateSaveError",
    "NoStagedConfigError",
]
