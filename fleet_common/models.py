"""
Data models for the build scheduler.

These models represent the domain objects shared by the scheduler, the
executor, the HTTP API and the client, independent of how builds are run.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .ports import BuildHandle


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class Target:
    """
    A build target as declared in the targets configuration file.

    Branch and commit state live in the target's working tree and are
    queried through the VCS port, never stored here.
    """

    id: str
    active: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, target_id: str, data: dict[str, Any]) -> "Target":
        """Create a target from its configuration entry."""
        extra = {k: v for k, v in data.items() if k != "active"}
        return cls(id=target_id, active=bool(data.get("active", False)), extra=extra)


@dataclass(frozen=True)
class BuildOptions:
    """
    Options for a single build.

    skip_notifier suppresses the outward notification, skip_cdn skips the
    secondary artifact publish, fetch_repo forces a fetch before compiling
    and map_switch is forwarded unchanged into the completion payload.
    """

    skip_notifier: bool = False
    skip_cdn: bool = False
    fetch_repo: bool = False
    map_switch: str | bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "skip_notifier": self.skip_notifier,
            "skip_cdn": self.skip_cdn,
            "fetch_repo": self.fetch_repo,
            "map_switch": self.map_switch,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "BuildOptions":
        data = data or {}
        return cls(
            skip_notifier=bool(data.get("skip_notifier", False)),
            skip_cdn=bool(data.get("skip_cdn", False)),
            fetch_repo=bool(data.get("fetch_repo", False)),
            map_switch=data.get("map_switch") or False,
        )


class AdmissionOutcome(str, Enum):
    """Result of submitting a build request to the job registry."""

    STARTED = "started"  # Dispatched to the executor
    QUEUED = "queued"  # Target busy, request queued behind the active job
    DROPPED = "dropped"  # Target busy and already queued, request discarded
    REJECTED = "rejected"  # Concurrency cap reached
    FAILED = "failed"  # Executor refused to start the build


@dataclass
class ActiveJob:
    """A build currently running for a target."""

    target_id: str
    options: BuildOptions
    handle: "BuildHandle | None" = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "options": self.options.to_dict(),
            "started_at": _isoformat(self.started_at),
        }


@dataclass
class QueuedRequest:
    """A build request waiting behind the active job for the same target."""

    target_id: str
    options: BuildOptions
    queued_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "options": self.options.to_dict(),
            "queued_at": _isoformat(self.queued_at),
        }


@dataclass(frozen=True)
class BuildCompletion:
    """
    The single completion signal of a build.

    error carries the failure detail of a build that ran but failed; it is
    None for successful and cancelled builds.
    """

    target_id: str
    cancelled: bool = False
    error: str | bool | None = None


@dataclass
class BuildPayload:
    """Outcome of a finished build, as sent to the notifier."""

    server: str
    last_compile: str = ""
    branch: str | None = None
    commit: str | None = None
    author: str | None = None
    message: str | None = None
    error: str | bool | None = None
    map_switch: str | bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert payload to dictionary format (for JSON serialization)."""
        return {
            "server": self.server,
            "last_compile": self.last_compile,
            "branch": self.branch,
            "commit": self.commit,
            "author": self.author,
            "message": self.message,
            "error": self.error,
            "mapSwitch": self.map_switch,
        }
