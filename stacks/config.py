"""Config management for Stacks.

`config.ini` lives in the data directory (beside main.py unless DATA_DIR is
set). Every section maps onto one dataclass below; a missing key keeps the
dataclass default. When running as PyInstaller onefile, PROJECT_ROOT is the
directory containing the executable.
"""

from __future__ import annotations

import configparser
import dataclasses
import os
import pathlib
import sys
from typing import Any, Dict, Optional, Type, TypeVar

from .logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _get_project_root() -> pathlib.Path:
    if getattr(sys, "frozen", False):
        return pathlib.Path(sys.executable).resolve().parent
    return pathlib.Path(__file__).resolve().parents[1]


PROJECT_ROOT = _get_project_root()

# DATA_DIR holds all persistent state (config.ini, library.db, stacks.log).
# Set via env var for Docker; defaults to PROJECT_ROOT for standalone use.
DATA_DIR = pathlib.Path(os.environ.get("DATA_DIR", str(PROJECT_ROOT)))
DEFAULT_CONFIG_PATH = DATA_DIR / "config.ini"


@dataclasses.dataclass
class LibraryConfig:
    path: pathlib.Path = pathlib.Path("/path/to/comics")
    name: str = "My Library"
    repair_extensions: bool = False
    convert_to_cbz: bool = False
    import_local_artwork: bool = True


@dataclasses.dataclass
class ThumbnailConfig:
    width: int = 300
    height: int = 450
    quality: int = 85


@dataclasses.dataclass
class ScannerConfig:
    supported_formats: tuple[str, ...] = ("cbz", "cbr")
    ignore_patterns: tuple[str, ...] = (".DS_Store", "Thumbs.db", "@eaDir")


@dataclasses.dataclass
class MonitoringConfig:
    enabled: bool = True
    debounce_seconds: int = 2


@dataclasses.dataclass
class TaskConfig:
    """Background task pool settings."""

    workers: int = 2
    file_hashing: bool = True

    def __post_init__(self) -> None:
        self.workers = max(1, self.workers)


@dataclasses.dataclass
class StacksConfig:
    library: LibraryConfig
    thumbnails: ThumbnailConfig = dataclasses.field(default_factory=ThumbnailConfig)
    scanner: ScannerConfig = dataclasses.field(default_factory=ScannerConfig)
    monitoring: MonitoringConfig = dataclasses.field(default_factory=MonitoringConfig)
    tasks: TaskConfig = dataclasses.field(default_factory=TaskConfig)

    @property
    def library_path(self) -> pathlib.Path:
        return self.library.path

    @property
    def database_path(self) -> pathlib.Path:
        return DATA_DIR / "library.db"


# INI section name -> StacksConfig attribute (they happen to match)
SECTIONS: Dict[str, Type[Any]] = {
    "library": LibraryConfig,
    "thumbnails": ThumbnailConfig,
    "scanner": ScannerConfig,
    "monitoring": MonitoringConfig,
    "tasks": TaskConfig,
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_value(raw: str, default: Any) -> Any:
    """Coerce an INI string to the type of the field default."""
    if isinstance(default, bool):
        return _parse_bool(raw)
    if isinstance(default, int):
        return int(raw.strip())
    if isinstance(default, tuple):
        return tuple(item.strip() for item in raw.split(",") if item.strip())
    if isinstance(default, pathlib.Path):
        return pathlib.Path(raw.strip()).expanduser()
    return raw.strip()


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, tuple):
        return ",".join(value)
    return str(value)


def _load_section(parser: configparser.ConfigParser, section: str, cls: Type[T]) -> T:
    values = {}
    for field in dataclasses.fields(cls):
        raw = parser.get(section, field.name, fallback=None)
        if raw is not None:
            values[field.name] = _parse_value(raw, field.default)
    return cls(**values)


def load_config(config_path: Optional[pathlib.Path] = None) -> StacksConfig:
    """Load configuration from config.ini.

    Defaults to `config.ini` in the data directory.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    parser = configparser.ConfigParser()
    parser.read(path)
    return StacksConfig(**{name: _load_section(parser, name, cls) for name, cls in SECTIONS.items()})


_cached_config: Optional[StacksConfig] = None


def get_config() -> StacksConfig:
    """Return the cached config singleton. Loads from disk on first call."""
    global _cached_config
    if _cached_config is None:
        _cached_config = load_config()
    return _cached_config


def reset_config_cache() -> None:
    global _cached_config
    _cached_config = None


def write_config(
    config_path: pathlib.Path, library_path: pathlib.Path, library_name: str
) -> None:
    """Write a config.ini with every default spelled out, pointing at library_path."""
    config = StacksConfig(library=LibraryConfig(path=library_path.expanduser(), name=library_name))

    parser = configparser.ConfigParser()
    for section in SECTIONS:
        values = dataclasses.asdict(getattr(config, section))
        parser[section] = {key: _format_value(value) for key, value in values.items()}

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w") as handle:
        parser.write(handle)
    logger.debug(f"Wrote config to {config_path}")
