"""Exceptions raised across the build scheduler."""


class FleetError(Exception):
    """Base class for all build scheduler errors."""


class ConfigurationError(FleetError):
    """Unknown target, missing working tree or unreadable configuration."""


class VCSError(FleetError):
    """A version-control query or operation failed."""


class BuildStartError(FleetError):
    """The executor could not start a build."""


class NotifierError(FleetError):
    """Delivering a build notification failed."""
