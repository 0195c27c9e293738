"""
Runtime settings for the build scheduler.

Environment Variables:
    FLEET_TARGETS_FILE: Targets configuration file (default: targets.json)
    FLEET_SERVERS_DIR: Directory holding one folder per target (default: /ss13_servers)
    FLEET_MAX_JOBS: Maximum concurrent builds (default: 2)
    FLEET_POLL_INTERVAL: Seconds between polling cycles (default: 60.0)
    FLEET_BRANCH_PREFIX: Branch prefix exempt from automatic rebuilds (default: testmerge-)
    FLEET_BUILD_COMMAND: Compile command (default: /bin/bash scripts/gate.sh)
    FLEET_BUILD_LOG_DIR: Directory for transient compile logs (default: logs/builds)
    FLEET_BUILD_TIMEOUT: Seconds before a build is cancelled (default: unset)
    FLEET_NOTIFIER_URL: Endpoint receiving build notifications (default: unset)
    FLEET_API_KEY: Key passed to the compile command and the notifier
    FLEET_LOG_FILE: Append-only scheduler log (default: logs/build.log)
"""

import logging
import os
import shlex
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_MAX_JOBS = 2
DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_BRANCH_PREFIX = "testmerge-"
DEFAULT_BUILD_COMMAND = "/bin/bash scripts/gate.sh"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"Invalid {name}={value}, using default {default}")
        return default
    return value


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"Invalid {name}={value}, using default {default}")
        return default
    return value


@dataclass
class Settings:
    """Settings shared by the controller entrypoint and the HTTP server."""

    targets_file: str = "targets.json"
    servers_dir: str = "/ss13_servers"
    max_jobs: int = DEFAULT_MAX_JOBS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    build_command: list[str] = field(
        default_factory=lambda: shlex.split(DEFAULT_BUILD_COMMAND)
    )
    build_log_dir: str = "logs/builds"
    build_timeout: float | None = None
    notifier_url: str | None = None
    api_key: str = ""
    log_file: str | None = "logs/build.log"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from FLEET_* environment variables."""
        return cls(
            targets_file=os.environ.get("FLEET_TARGETS_FILE", "targets.json"),
            servers_dir=os.environ.get("FLEET_SERVERS_DIR", "/ss13_servers"),
            max_jobs=_env_int("FLEET_MAX_JOBS", DEFAULT_MAX_JOBS),
            poll_interval=_env_float("FLEET_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            branch_prefix=os.environ.get("FLEET_BRANCH_PREFIX", DEFAULT_BRANCH_PREFIX),
            build_command=shlex.split(
                os.environ.get("FLEET_BUILD_COMMAND", DEFAULT_BUILD_COMMAND)
            ),
            build_log_dir=os.environ.get("FLEET_BUILD_LOG_DIR", "logs/builds"),
            build_timeout=_env_float("FLEET_BUILD_TIMEOUT", None),
            notifier_url=os.environ.get("FLEET_NOTIFIER_URL") or None,
            api_key=os.environ.get("FLEET_API_KEY", ""),
            log_file=os.environ.get("FLEET_LOG_FILE", "logs/build.log") or None,
        )
