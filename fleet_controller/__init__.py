"""
Fleet Controller module.

This module contains the build scheduler core (job registry and polling
scheduler) together with the git, executor and notifier adapters it drives.
The controller can run standalone (python -m fleet_controller) or inside
the HTTP server process.
"""

from .bootstrap import Components, create_components
from .executor import ShellBuildExecutor
from .git_repository import GitRepository
from .notifier import HttpNotifier, LoggingNotifier
from .registry import JobRegistry
from .scheduler import Scheduler
from .target_config import TargetConfigLoader

__all__ = [
    "Components",
    "GitRepository",
    "HttpNotifier",
    "JobRegistry",
    "LoggingNotifier",
    "Scheduler",
    "ShellBuildExecutor",
    "TargetConfigLoader",
    "create_components",
]
