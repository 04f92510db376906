"""YAML configuration loader for gofinances.

Loads import.yaml from the config/ directory. Every key is optional; a
missing import.yaml means all defaults apply.
"""

from pathlib import Path

import yaml

DEFAULTS: dict[str, dict] = {
    "csv": {
        "delimiter": ",",
        "from_line": 2,
        "encoding": "utf-8",
    },
    "categories": {
        "max_conflict_retries": 3,
    },
    "cleanup": {
        "delete_after_import": True,
    },
    "watcher": {
        "settle_seconds": 10,
        "poll_interval": 30,
    },
}


class Config:
    """Loads and provides access to the import configuration."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._settings: dict | None = None

    def _load(self, filename: str) -> dict:
        path = self.config_dir / filename
        if not path.exists():
            return {}
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping at top level of {path}")
        return data

    @property
    def settings(self) -> dict:
        """import.yaml merged over DEFAULTS, one level deep."""
        if self._settings is None:
            data = self._load("import.yaml")
            merged: dict[str, dict] = {}
            for section, defaults in DEFAULTS.items():
                overrides = data.get(section) or {}
                if not isinstance(overrides, dict):
                    raise ValueError(f"Section '{section}' in import.yaml must be a mapping")
                merged[section] = {**defaults, **overrides}
            self._settings = merged
        return self._settings

    @property
    def csv_delimiter(self) -> str:
        delimiter = str(self.settings["csv"]["delimiter"])
        if len(delimiter) != 1:
            raise ValueError(f"csv.delimiter must be a single character, got {delimiter!r}")
        return delimiter

    @property
    def csv_from_line(self) -> int:
        """First data line (1-based). 2 skips a single header line."""
        return int(self.settings["csv"]["from_line"])

    @property
    def csv_encoding(self) -> str:
        return str(self.settings["csv"]["encoding"])

    @property
    def max_conflict_retries(self) -> int:
        """Attempts at the category batch insert before giving up."""
        return int(self.settings["categories"]["max_conflict_retries"])

    @property
    def delete_after_import(self) -> bool:
        return bool(self.settings["cleanup"]["delete_after_import"])

    @property
    def settle_seconds(self) -> int:
        """Seconds a dropped file must stay unchanged before it is imported."""
        return int(self.settings["watcher"]["settle_seconds"])

    @property
    def poll_interval(self) -> int:
        return int(self.settings["watcher"]["poll_interval"])
