"""catatan_etl.settings

YAML settings for import/export runs.

Responsibilities:
  - Load and validate config/catatan.yml (or any --settings-path)
  - Fall back to built-in defaults for keys the file leaves out
  - Hash YAML content so the run report records which settings were used

Usage:
    from pathlib import Path
    from catatan_etl.settings import load_settings

    settings = load_settings(Path("config/catatan.yml"))
    settings.chunk_size  # -> 200
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from catatan_etl.bulk_writer import DEFAULT_CHUNK_SIZE
from catatan_etl.records import ORDER_CREATED_DESC, VALID_ORDERS

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS_PATH = Path("config/catatan.yml")

KNOWN_KEYS = frozenset({"chunk_size", "export_delimiter", "timezone", "default_order"})

VALID_EXPORT_DELIMITERS = frozenset({";", ",", "\t", "|"})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SettingsValidationError(ValueError):
    """Raised when a settings file fails validation."""


# ---------------------------------------------------------------------------
# Settings dataclass
# ---------------------------------------------------------------------------

@dataclass
class Settings:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    export_delimiter: str = ";"
    timezone: str | None = None
    default_order: str = ORDER_CREATED_DESC
    yaml_hash: str | None = None
    source_path: str | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunk_size": self.chunk_size,
            "export_delimiter": self.export_delimiter,
            "timezone": self.timezone,
            "default_order": self.default_order,
            "yaml_hash": self.yaml_hash,
            "source_path": self.source_path,
        }


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_settings(yaml_path: Path | None = None) -> Settings:
    """Load and validate settings.

    A missing file at the default location yields built-in defaults; an
    explicitly given path must exist.

    Raises:
        SettingsValidationError: If the file content is invalid.
        FileNotFoundError: If an explicit yaml_path does not exist.
    """
    path = yaml_path or DEFAULT_SETTINGS_PATH
    if yaml_path is None and not path.exists():
        return Settings()

    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    validate_settings(data)
    return Settings(
        chunk_size=int(data.get("chunk_size", DEFAULT_CHUNK_SIZE)),
        export_delimiter=str(data.get("export_delimiter", ";")),
        timezone=data.get("timezone") or None,
        default_order=str(data.get("default_order", ORDER_CREATED_DESC)),
        yaml_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
        source_path=str(path),
    )


def validate_settings(data: Any) -> None:
    """Raise SettingsValidationError if data does not match the schema."""
    if not isinstance(data, dict):
        raise SettingsValidationError("settings must be a mapping")

    unknown = set(data) - KNOWN_KEYS
    if unknown:
        raise SettingsValidationError(f"unknown settings key(s): {sorted(unknown)}")

    if "chunk_size" in data:
        chunk = data["chunk_size"]
        if isinstance(chunk, bool) or not isinstance(chunk, int) or chunk < 1:
            raise SettingsValidationError(
                f"chunk_size must be a positive integer, got {chunk!r}"
            )

    if "export_delimiter" in data and data["export_delimiter"] not in VALID_EXPORT_DELIMITERS:
        raise SettingsValidationError(
            f"export_delimiter must be one of {sorted(VALID_EXPORT_DELIMITERS)}, "
            f"got {data['export_delimiter']!r}"
        )

    if "default_order" in data and data["default_order"] not in VALID_ORDERS:
        raise SettingsValidationError(
            f"default_order must be one of {list(VALID_ORDERS)}, got {data['default_order']!r}"
        )

    tz = data.get("timezone")
    if tz is not None and not isinstance(tz, str):
        raise SettingsValidationError(f"timezone must be a string, got {tz!r}")
