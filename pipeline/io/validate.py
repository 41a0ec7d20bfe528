from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from jsonschema.validators import Draft202012Validator as Validator

SCHEMAS_ROOT = Path(__file__).resolve().parents[1] / "schemas"


def load_schema(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        schema = yaml.safe_load(f)
    Validator.check_schema(schema)
    return schema


def schema_path(name: str) -> Path:
    return SCHEMAS_ROOT / f"{name}.schema.yaml"


def validate_obj(schema: dict[str, Any], obj: Mapping[str, Any], *, label: str = "config") -> None:
    """Validate ``obj`` and raise ValueError listing every violation."""
    errors = sorted(Validator(schema).iter_errors(obj), key=lambda e: [str(p) for p in e.absolute_path])
    if not errors:
        return
    lines = []
    for err in errors:
        where = ".".join(str(p) for p in err.absolute_path) or "<root>"
        lines.append(f"  - {where}: {err.message}")
    raise ValueError(f"Invalid {label}:\n" + "\n".join(lines))
