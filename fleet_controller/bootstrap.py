"""Construction of the scheduler and its collaborators from settings."""

import logging
from dataclasses import dataclass

from fleet_common.ports import Notifier
from fleet_common.settings import Settings

from .executor import ShellBuildExecutor
from .git_repository import GitRepository
from .notifier import HttpNotifier, LoggingNotifier
from .registry import JobRegistry
from .scheduler import Scheduler
from .target_config import TargetConfigLoader

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """The wired scheduler with the collaborators the HTTP API also needs."""

    scheduler: Scheduler
    registry: JobRegistry
    vcs: GitRepository
    config_loader: TargetConfigLoader


def create_notifier(settings: Settings) -> Notifier:
    if settings.notifier_url:
        return HttpNotifier(settings.notifier_url, api_key=settings.api_key)
    logger.info("No notifier URL configured, build outcomes will only be logged")
    return LoggingNotifier()


def create_components(settings: Settings) -> Components:
    """
    Wire the scheduler for the given settings.

    Nothing is started until Scheduler.start() is awaited.
    """
    vcs = GitRepository(settings.servers_dir)
    notifier = create_notifier(settings)
    executor = ShellBuildExecutor(
        vcs=vcs,
        notifier=notifier,
        build_command=settings.build_command,
        build_log_dir=settings.build_log_dir,
        api_key=settings.api_key,
        timeout=settings.build_timeout,
    )
    registry = JobRegistry(executor, notifier, max_jobs=settings.max_jobs)
    config_loader = TargetConfigLoader(settings.targets_file)
    scheduler = Scheduler(
        registry=registry,
        vcs=vcs,
        config_loader=config_loader,
        poll_interval=settings.poll_interval,
        branch_prefix=settings.branch_prefix,
    )
    return Components(
        scheduler=scheduler,
        registry=registry,
        vcs=vcs,
        config_loader=config_loader,
    )
