"""
Fleet Common module.

This module contains shared domain models, errors and collaborator
interfaces used across the build scheduler components (controller, server,
client).

The common module has no dependencies on other fleet_* modules, making it
a pure domain layer that can be imported by any component.
"""

from .errors import (
    BuildStartError,
    ConfigurationError,
    FleetError,
    NotifierError,
    VCSError,
)
from .models import (
    ActiveJob,
    AdmissionOutcome,
    BuildCompletion,
    BuildOptions,
    BuildPayload,
    QueuedRequest,
    Target,
)
from .ports import BuildExecutor, BuildHandle, Notifier, VCSPort

__all__ = [
    "ActiveJob",
    "AdmissionOutcome",
    "BuildCompletion",
    "BuildExecutor",
    "BuildHandle",
    "BuildOptions",
    "BuildPayload",
    "BuildStartError",
    "ConfigurationError",
    "FleetError",
    "Notifier",
    "NotifierError",
    "QueuedRequest",
    "Target",
    "VCSError",
    "VCSPort",
]
