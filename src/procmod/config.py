"""Runtime settings from the environment and an optional ``.env`` file.

Real environment variables win over ``.env`` entries; command-line flags
win over both (applied by the CLI).
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "PROCMOD_"
DEFAULT_JOURNAL_DB = "modernization_journal.duckdb"
DEFAULT_BATCH_SIZE = 10

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class ModernizeSettings:
    journal_db: Path = Path(DEFAULT_JOURNAL_DB)
    definitions_db: Path | None = None
    definitions_dir: Path | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    backup_enabled: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.definitions_db is not None and self.definitions_dir is not None:
            raise ValueError("definitions_db and definitions_dir are mutually exclusive")


def read_dotenv(path: Path) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines; blank lines and ``#`` comments are ignored."""
    values: dict[str, str] = {}
    if not path.exists():
        return values
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip().strip("'\"")
        if key:
            values[key] = value
    return values


def _parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{key} must be a boolean, got {raw!r}")


def load_settings(
    env: Mapping[str, str] | None = None,
    dotenv_path: Path | None = None,
) -> ModernizeSettings:
    """Build settings from ``PROCMOD_*`` variables."""
    merged: dict[str, str] = {}
    if dotenv_path is not None:
        merged.update(read_dotenv(dotenv_path))
    merged.update(os.environ if env is None else env)

    def _get(name: str) -> str | None:
        value = merged.get(ENV_PREFIX + name)
        return value if value else None

    kwargs: dict[str, object] = {}
    if (journal := _get("JOURNAL_DB")) is not None:
        kwargs["journal_db"] = Path(journal)
    if (definitions_db := _get("DEFINITIONS_DB")) is not None:
        kwargs["definitions_db"] = Path(definitions_db)
    if (definitions_dir := _get("DEFINITIONS_DIR")) is not None:
        kwargs["definitions_dir"] = Path(definitions_dir)
    if (batch_size := _get("BATCH_SIZE")) is not None:
        try:
            kwargs["batch_size"] = int(batch_size)
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}BATCH_SIZE must be an integer, got {batch_size!r}") from exc
    if (backup := _get("BACKUP_ENABLED")) is not None:
        kwargs["backup_enabled"] = _parse_bool(ENV_PREFIX + "BACKUP_ENABLED", backup)
    if (level := _get("LOG_LEVEL")) is not None:
        kwargs["log_level"] = level.upper()
    return ModernizeSettings(**kwargs)  # type: ignore[arg-type]
