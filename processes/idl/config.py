from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from pipeline.io.validate import load_schema, schema_path, validate_obj

from .types import ProjectConfig

logger = logging.getLogger("processes.idl.config")

_DIR_KEYS = ("idl_dir", "program_dir", "sdk_dir", "binary_install_dir")
_BOOL_KEYS = frozenset({"remove_existing_idl", "anchor_remaining_accounts"})
_MAPPING_KEYS = frozenset({"type_aliases", "serializers"})
DEFAULT_BINARY_INSTALL_DIR = ".crates"


def _coerce_override(key: str, val: str) -> bool | str:
    # program ids, paths and type names are strings even when they look numeric
    if key in _BOOL_KEYS and val.lower() in ("true", "false"):
        return val.lower() == "true"
    return val


def _apply_override(cfg: dict[str, Any], item: str) -> None:
    """Apply one ``key=value`` override; ``type_aliases.Name=value`` sets a single entry."""
    if "=" not in item:
        logger.warning("Ignoring config override without '=': %r", item)
        return
    key, val = (part.strip() for part in item.split("=", 1))
    head, dot, entry = key.partition(".")
    if dot and head in _MAPPING_KEYS:
        cfg[head] = {**(cfg.get(head) or {}), entry: val}
        return
    cfg[key] = _coerce_override(key, val)


def _read_config_file(config_path: Path) -> dict[str, Any]:
    text = config_path.read_text(encoding="utf-8")
    if config_path.suffix.lower() in (".yaml", ".yml"):
        import yaml  # lazy

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse YAML config {config_path}: {e}") from e
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse JSON config {config_path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Config {config_path} must be a mapping, got {type(data).__name__}")
    return dict(data)


def load_config(
    config_path: Path | None, inline_kv: Sequence[str] | None = None
) -> dict[str, Any]:
    cfg = _read_config_file(config_path) if config_path else {}
    for item in inline_kv or ():
        _apply_override(cfg, item)
    return cfg


def build_project_config(raw: Mapping[str, Any], *, base_dir: Path | None = None) -> ProjectConfig:
    """Validate a raw config mapping and resolve its directories against ``base_dir``."""
    validate_obj(load_schema(schema_path("project_config")), raw, label="project config")
    data = dict(raw)
    data.setdefault("binary_install_dir", DEFAULT_BINARY_INSTALL_DIR)
    root = (base_dir or Path.cwd()).resolve()
    for key in _DIR_KEYS:
        data[key] = (root / Path(str(data[key]))).resolve()
    return ProjectConfig(**data)


def load_project_config(
    config_path: Path, inline_kv: Sequence[str] | None = None
) -> ProjectConfig:
    raw = load_config(config_path, inline_kv)
    return build_project_config(raw, base_dir=config_path.resolve().parent)
