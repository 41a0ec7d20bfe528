from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any


def generate_sdk(
    idl: dict[str, Any],
    sdk_dir: Path,
    formatting_options: Mapping[str, Any] | None = None,
    type_aliases: dict[str, str] | None = None,
    serializers: dict[str, str] | None = None,
    remaining_accounts: bool | None = None,
) -> None:
    # Records what it was handed instead of rendering code
    sdk_dir.mkdir(parents=True, exist_ok=True)
    payload = {
        "name": idl.get("name"),
        "metadata": idl.get("metadata"),
        "formatting_options": dict(formatting_options or {}),
        "type_aliases": type_aliases,
        "serializers": serializers,
        "remaining_accounts": remaining_accounts,
    }
    (sdk_dir / "sdk.json").write_text(json.dumps(payload, indent=2), encoding="utf-8")
