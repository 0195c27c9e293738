"""
Loader for the targets configuration file.

The file is a JSON document of the form::

    {"targets": {"main": {"active": true}, "event": {"active": false}}}

It is read on every call so operators can toggle targets without
restarting the scheduler.
"""

import json
from pathlib import Path

from fleet_common.errors import ConfigurationError
from fleet_common.models import Target


class TargetConfigLoader:
    """Reads the targets configuration from disk."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> dict[str, Target]:
        """
        Load the current targets configuration.

        Returns:
            Mapping of target id to Target, in file order

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        try:
            data = json.loads(self.path.read_text())
        except OSError as e:
            raise ConfigurationError(f"Cannot read {self.path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {self.path}: {e}") from e

        targets = data.get("targets") if isinstance(data, dict) else None
        if not isinstance(targets, dict):
            raise ConfigurationError(f"{self.path} has no 'targets' mapping")

        result = {}
        for target_id, entry in targets.items():
            if not isinstance(entry, dict):
                raise ConfigurationError(
                    f"Target {target_id} in {self.path} must be an object"
                )
            result[target_id] = Target.from_dict(target_id, entry)
        return result

    def get(self, target_id: str) -> Target:
        """
        Load a single target.

        Raises:
            ConfigurationError: If the target is not configured
        """
        targets = self.load()
        if target_id not in targets:
            raise ConfigurationError(f"Unknown target: {target_id}")
        return targets[target_id]
