"""Locating, decoding and merging configuration mappings."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence
import json
import tomllib

try:  # Optional dependency for YAML support
    import yaml
except ModuleNotFoundError:  # pragma: no cover - exercised when PyYAML absent
    yaml = None


ConfigLoader = Callable[[Any], Mapping[str, Any]]


def _raise_yaml_missing() -> Mapping[str, Any]:
    raise RuntimeError(
        "PyYAML is required to load YAML configuration files. Install with `pip install jarsmith[yaml]`."
    )


FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream) if yaml else _raise_yaml_missing(),
    ".yml": lambda stream: yaml.safe_load(stream) if yaml else _raise_yaml_missing(),
}
"""Mapping of file suffixes to loader callables."""


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Load and decode a configuration mapping from ``path``."""

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        supported = ", ".join(sorted(FILE_LOADERS))
        raise ValueError(f"Unsupported configuration file extension: {suffix}. Supported: {supported}")

    if suffix == ".toml":
        with path.open("rb") as handle:
            data = loader(handle)
    else:
        with path.open("r", encoding="utf-8") as handle:
            data = loader(handle)

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a mapping at the root")
    return data


def collect_config_files(directory: Path) -> Dict[str, Path]:
    """Return a mapping of filename stems to configuration files within ``directory``."""

    files: Dict[str, Path] = {}
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix.lower() not in FILE_LOADERS:
            continue
        stem = path.stem
        if stem in files:
            raise ValueError(
                f"Multiple configuration files found for '{stem}': '{files[stem].name}' and '{path.name}'. "
                "Only one format per configuration entry is allowed."
            )
        files[stem] = path
    return files


def merge_mappings(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge two mapping objects; ``overlay`` wins on scalar conflicts."""

    result: Dict[str, Any] = dict(base)
    for key, value in overlay.items():
        existing = result.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            result[key] = merge_mappings(existing, value)
        else:
            result[key] = value
    return result


def normalize_string_list(value: Any, *, field_name: str | None = None) -> List[str]:
    """Coerce ``value`` into a list of trimmed strings."""

    label = f"{field_name} " if field_name else ""
    if value is None:
        return []
    if isinstance(value, (str, bytes)):
        text = str(value).strip()
        return [text] if text else []
    if isinstance(value, Sequence):
        items: List[str] = []
        for item in value:
            if not isinstance(item, (str, bytes)):
                raise TypeError(f"{label}entries must be strings")
            text = str(item).strip()
            if text:
                items.append(text)
        return items
    raise TypeError(f"{label}must be a string or sequence of strings")


def resolve_config_paths(root: Path, directories: Iterable[Path]) -> tuple[tuple[Path, ...], tuple[Path, ...]]:
    """Resolve ``directories`` relative to ``root`` and partition existing/missing paths.

    A directory listed twice keeps only its last position so later entries
    keep their override priority.
    """

    ordered: List[Path] = []
    for raw in directories:
        path = raw if raw.is_absolute() else (root / raw).resolve()
        if path in ordered:
            ordered.remove(path)
        ordered.append(path)

    resolved = tuple(path for path in ordered if path.exists())
    missing = tuple(path for path in ordered if not path.exists())
    return resolved, missing


__all__ = [
    "ConfigLoader",
    "FILE_LOADERS",
    "collect_config_files",
    "load_config_file",
    "merge_mappings",
    "normalize_string_list",
    "resolve_config_paths",
]
