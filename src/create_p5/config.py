"""Read and write .p5-config.json project metadata."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple, Optional

from .errors import ConfigError

CONFIG_FILENAME = ".p5-config.json"
LEGACY_CONFIG_FILENAME = "p5-config.json"

DELIVERY_MODES = ("cdn", "local")
P5_MODES = ("global", "instance")
LANGUAGES = ("javascript", "typescript")


def is_valid_delivery_mode(candidate: object) -> bool:
    return candidate in DELIVERY_MODES


def is_valid_p5_mode(candidate: object) -> bool:
    return candidate in P5_MODES


def is_valid_language(candidate: object) -> bool:
    return candidate in LANGUAGES


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class ProjectConfig:
    version: str
    mode: str = "cdn"
    language: Optional[str] = None
    p5_mode: Optional[str] = None
    types_version: Optional[str] = None
    template: Optional[str] = None
    last_updated: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "mode": self.mode,
            "language": self.language,
            "p5Mode": self.p5_mode,
            "typeDefsVersion": self.types_version,
            "lastUpdated": self.last_updated,
            "template": self.template,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectConfig":
        if not isinstance(data, dict) or not data.get("version"):
            raise ConfigError("Config is missing the required 'version' field")
        mode = data.get("mode") or "cdn"
        if not is_valid_delivery_mode(mode):
            raise ConfigError(f"Invalid delivery mode in config: {mode!r}")
        return cls(
            version=data["version"],
            mode=mode,
            language=data.get("language"),
            p5_mode=data.get("p5Mode"),
            types_version=data.get("typeDefsVersion"),
            template=data.get("template"),
            last_updated=data.get("lastUpdated") or _utc_now(),
        )

    def touch(self) -> None:
        self.last_updated = _utc_now()


def write_config(config_path: Path, config: ProjectConfig) -> None:
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as fh:
        json.dump(config.to_dict(), fh, indent=2)
        fh.write("\n")


def create_config(
    config_path: Path,
    *,
    version: str,
    mode: str = "cdn",
    language: Optional[str] = None,
    p5_mode: Optional[str] = None,
    types_version: Optional[str] = None,
    template: Optional[str] = None,
) -> ProjectConfig:
    """Write a fresh config stamped with the current time."""
    config = ProjectConfig(
        version=version,
        mode=mode or "cdn",
        language=language,
        p5_mode=p5_mode,
        types_version=types_version,
        template=template,
    )
    write_config(config_path, config)
    return config


def read_config(config_path: Path) -> Optional[ProjectConfig]:
    """Return the config at ``config_path``, or None when the file is absent."""
    config_path = Path(config_path)
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not read {config_path}: {e}") from e
    return ProjectConfig.from_dict(data)


def config_exists(config_path: Path) -> bool:
    return Path(config_path).is_file()


class MigrationResult(NamedTuple):
    migrated: bool
    error: Optional[str] = None


def migrate_config_if_needed(project_dir: Path) -> MigrationResult:
    """Rename a legacy p5-config.json to .p5-config.json."""
    old_path = Path(project_dir) / LEGACY_CONFIG_FILENAME
    new_path = Path(project_dir) / CONFIG_FILENAME

    if not old_path.exists():
        return MigrationResult(False)
    if new_path.exists():
        return MigrationResult(False, "error.migration.configExists")
    try:
        old_path.rename(new_path)
    except OSError as e:
        return MigrationResult(False, f"error.migration.renameFailed: {e}")
    return MigrationResult(True)
