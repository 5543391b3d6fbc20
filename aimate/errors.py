"""Exception hierarchy for aiMate."""

from __future__ import annotations


class AimateError(Exception):
    """Base class for all aiMate errors."""


class ConfigError(AimateError):
    """Configuration file or environment value is invalid."""


class PluginError(AimateError):
    """A plugin misbehaved or could not be loaded."""

    def __init__(self, plugin_id: str, message: str) -> None:
        super().__init__(f"{plugin_id}: {message}")
        self.plugin_id = plugin_id


class PluginRegistrationError(PluginError):
    """A plugin failed to construct or initialize."""


class CapabilityError(PluginError):
    """A plugin declares a capability it does not implement."""


class ToolValueError(AimateError):
    """A tool argument or result falls outside the supported value types."""


class CompletionError(AimateError):
    """The completion backend failed or returned an unreadable response."""


class BackendNotConfiguredError(CompletionError):
    """No completion backend endpoint is configured."""
