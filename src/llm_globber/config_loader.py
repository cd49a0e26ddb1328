"""
Configuration file loader for llm-globber.

Supports loading configuration from:
- llm-globber.toml / .llm-globber.toml
- globber.yml / .globber.yml / globber.yaml / .globber.yaml

CLI flags override config file values.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import DEFAULT_MAX_FILE_SIZE

# Optional runtime modules (loaded via importlib); typed as Any to avoid stub issues.
tomllib: Any | None
yaml: Any | None

try:
    import tomllib as _tomllib  # Python 3.11+
except ImportError:
    try:
        _tomllib = importlib.import_module("tomli")
    except ImportError:
        _tomllib = None
tomllib = _tomllib

try:
    yaml = importlib.import_module("yaml")
except ImportError:
    yaml = None


# Config file search order (first found wins)
CONFIG_FILE_NAMES = [
    "llm-globber.toml",
    ".llm-globber.toml",
    "globber.yml",
    ".globber.yml",
    "globber.yaml",
    ".globber.yaml",
]

SECTION_NAMES = ("llm-globber", "llm_globber", "globber")

_MB = 1024 * 1024


@dataclass
class ProjectConfig:
    """
    Project-level configuration loaded from config files.

    All fields are optional - CLI flags will override any values set here.
    """

    output_dir: Path | None = None
    name: str | None = None
    file_types: set[str] | None = None
    all_files: bool | None = None
    recursive: bool | None = None
    name_pattern: str | None = None
    skip_patterns: list[str] | None = None
    include_dot_files: bool | None = None
    max_file_size_mb: int | None = None
    abort_on_error: bool | None = None
    sign: bool | None = None
    respect_gitignore: bool | None = None

    # Source file path (for debugging)
    _config_file: Path | None = field(default=None, repr=False)

    @property
    def config_file(self) -> Path | None:
        return self._config_file

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary with sorted keys."""
        result: dict[str, Any] = {}
        for key in (
            "name",
            "all_files",
            "recursive",
            "name_pattern",
            "include_dot_files",
            "max_file_size_mb",
            "abort_on_error",
            "sign",
            "respect_gitignore",
        ):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.output_dir is not None:
            result["output_dir"] = str(self.output_dir)
        if self.file_types is not None:
            result["file_types"] = sorted(self.file_types)
        if self.skip_patterns is not None:
            result["skip_patterns"] = list(self.skip_patterns)
        if self._config_file is not None:
            result["_loaded_from"] = str(self._config_file)
        return dict(sorted(result.items()))


def find_config_file(search_dir: Path) -> Path | None:
    """
    Find a configuration file in a directory.

    Args:
        search_dir: Directory to search (usually the working directory)

    Returns:
        Path to the config file, or None if not found
    """
    for name in CONFIG_FILE_NAMES:
        config_path = search_dir / name
        if config_path.exists() and config_path.is_file():
            return config_path
    return None


def _select_section(data: dict[str, Any]) -> dict[str, Any]:
    for section in SECTION_NAMES:
        if section in data and isinstance(data[section], dict):
            return dict(data[section])
    return data


def _parse_toml(path: Path) -> dict[str, Any]:
    """Parse a TOML config file into a dict.

    Raises:
        ImportError: If TOML parsing support is unavailable.
    """
    if tomllib is None:
        raise ImportError(
            "TOML support requires 'tomli' package (Python < 3.11) or Python 3.11+. "
            "Install with: pip install tomli"
        )

    with open(path, "rb") as f:
        data: dict[str, Any] = tomllib.load(f)
    return _select_section(data)


def _parse_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML config file into a dict.

    Raises:
        ImportError: If PyYAML is not installed.
    """
    if yaml is None:
        raise ImportError(
            "YAML support requires 'pyyaml' package. Install with: pip install pyyaml"
        )

    with open(path, encoding="utf-8") as f:
        raw_data = yaml.safe_load(f)

    if not isinstance(raw_data, dict):
        return {}
    return _select_section(dict(raw_data))


def _normalize_extensions(extensions: Any) -> set[str] | None:
    """Normalize extension input to a set of dot-prefixed extensions.

    Args:
        extensions: Extensions from config/CLI (string, list, set, or None).

    Returns:
        A set of normalized extensions (e.g., `{".c", ".h"}`) or None if unset/invalid.
    """
    if extensions is None:
        return None

    if isinstance(extensions, str):
        extensions = [e.strip() for e in extensions.split(",")]

    if not isinstance(extensions, (list, set)):
        return None

    result = set()
    for ext in extensions:
        ext = str(ext).strip()
        if ext:
            if not ext.startswith("."):
                ext = f".{ext}"
            result.add(ext)

    return result if result else None


def _normalize_patterns(patterns: Any) -> list[str] | None:
    """Normalize skip patterns (a single glob or a list of globs) to a list."""
    if patterns is None:
        return None
    if isinstance(patterns, str):
        patterns = [patterns]
    if not isinstance(patterns, list):
        return None
    result = [str(p).strip() for p in patterns if str(p).strip()]
    return result if result else None


def load_config(search_dir: Path, config_path: Path | None = None) -> ProjectConfig:
    """
    Load configuration from a config file.

    Parse errors in an auto-discovered file are ignored so the CLI keeps working
    without config; an explicitly requested file that cannot be parsed raises.

    Args:
        search_dir: Directory searched when no explicit path is given
        config_path: Explicit path to config file (optional)

    Returns:
        ProjectConfig with loaded values (unset values remain None).

    Raises:
        ValueError: If an explicit config file is missing, has an unknown format
            or cannot be parsed.
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = find_config_file(search_dir)

    if config_path is None:
        return ProjectConfig()

    if not config_path.exists():
        if explicit:
            raise ValueError(f"Config file does not exist: {config_path}")
        return ProjectConfig()

    suffix = config_path.suffix.lower()
    if suffix == ".toml":
        parse = _parse_toml
    elif suffix in (".yml", ".yaml"):
        parse = _parse_yaml
    else:
        if explicit:
            raise ValueError(f"Unsupported config file format: {config_path}")
        return ProjectConfig()

    try:
        data = parse(config_path)
    except Exception as e:
        if explicit:
            raise ValueError(f"Failed to parse config file {config_path}: {e}") from e
        return ProjectConfig()

    config = ProjectConfig(_config_file=config_path)

    if "output_dir" in data:
        config.output_dir = Path(data["output_dir"])
    if "name" in data:
        config.name = str(data["name"])
    config.file_types = _normalize_extensions(data.get("file_types") or data.get("types"))
    if "all_files" in data:
        config.all_files = bool(data["all_files"])
    if "recursive" in data:
        config.recursive = bool(data["recursive"])
    if "name_pattern" in data:
        config.name_pattern = str(data["name_pattern"])
    config.skip_patterns = _normalize_patterns(data.get("skip_patterns"))
    if "include_dot_files" in data:
        config.include_dot_files = bool(data["include_dot_files"])
    if "max_file_size_mb" in data:
        config.max_file_size_mb = int(data["max_file_size_mb"])
    if "abort_on_error" in data:
        config.abort_on_error = bool(data["abort_on_error"])
    if "sign" in data:
        config.sign = bool(data["sign"])
    if "respect_gitignore" in data:
        config.respect_gitignore = bool(data["respect_gitignore"])

    return config


def _flag(cli_value: bool, config_value: bool | None, default: bool) -> bool:
    if cli_value:
        return True
    if config_value is not None:
        return config_value
    return default


def merge_cli_with_config(
    config: ProjectConfig,
    *,
    # CLI arguments (None / False means not specified on CLI)
    output_dir: Path | None = None,
    name: str | None = None,
    file_types: str | None = None,
    all_files: bool = False,
    recursive: bool = False,
    name_pattern: str | None = None,
    skip_patterns: list[str] | None = None,
    include_dot_files: bool = False,
    max_file_size_mb: int | None = None,
    abort_on_error: bool = False,
    sign: bool = False,
    respect_gitignore: bool = False,
) -> dict[str, Any]:
    """Merge CLI arguments with config file values (CLI wins).

    Boolean flags can only switch a behaviour on from the command line; a config
    file may switch it on as well.

    Returns:
        Dictionary of merged values used by the glob command. `output_dir` and
        `name` may be None when neither source provides them.
    """
    result: dict[str, Any] = {}

    result["output_dir"] = output_dir if output_dir is not None else config.output_dir
    result["name"] = name if name is not None else config.name

    if file_types:
        result["file_types"] = _normalize_extensions(file_types) or set()
    elif config.file_types is not None:
        result["file_types"] = config.file_types
    else:
        result["file_types"] = set()

    result["all_files"] = _flag(all_files, config.all_files, False)
    result["recursive"] = _flag(recursive, config.recursive, False)
    result["include_dot_files"] = _flag(include_dot_files, config.include_dot_files, False)
    result["abort_on_error"] = _flag(abort_on_error, config.abort_on_error, False)
    result["sign"] = _flag(sign, config.sign, False)
    result["respect_gitignore"] = _flag(respect_gitignore, config.respect_gitignore, False)

    if name_pattern is not None:
        result["name_pattern"] = name_pattern
    else:
        result["name_pattern"] = config.name_pattern

    if skip_patterns:
        result["skip_patterns"] = list(skip_patterns)
    elif config.skip_patterns is not None:
        result["skip_patterns"] = list(config.skip_patterns)
    else:
        result["skip_patterns"] = []

    if max_file_size_mb is not None:
        result["max_file_size"] = max_file_size_mb * _MB
    elif config.max_file_size_mb is not None:
        result["max_file_size"] = config.max_file_size_mb * _MB
    else:
        result["max_file_size"] = DEFAULT_MAX_FILE_SIZE

    return result
