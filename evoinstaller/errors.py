"""Exception types raised across the installer."""

from __future__ import annotations


class InstallerError(RuntimeError):
    """Base class for installer failures."""


class ConfigurationError(InstallerError, ValueError):
    """Missing or invalid input that cannot be asked for interactively."""


class ProbeError(InstallerError):
    """An environment probe or metadata lookup failed."""


class EntryPointNotFound(InstallerError):
    """A required external entry script could not be located."""


class OperationCancelled(InstallerError):
    """The run was cancelled while waiting."""
