from __future__ import annotations

import os
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Ensure project root is on sys.path for package imports like `processes.*`
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def write_cargo_toml(tmp_path: Path) -> Callable[[str], Path]:
    def _write(body: str, program_dir: Path | None = None) -> Path:
        root = program_dir or tmp_path / "program"
        root.mkdir(parents=True, exist_ok=True)
        path = root / "Cargo.toml"
        path.write_text('[package]\nname = "program"\nversion = "0.1.0"\n\n' + body, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def install_fake_shank() -> Callable[[Path], Path]:
    """Place an executable `shank` under `<root>/bin` that runs fixtures/fake_shank.py."""

    def _install(root: Path) -> Path:
        if os.name == "nt":
            pytest.skip("shebang scripts are POSIX only")
        bin_dir = root / "bin"
        bin_dir.mkdir(parents=True, exist_ok=True)
        target = bin_dir / "shank"
        target.write_text(
            f"#!{sys.executable}\n" + (FIXTURES / "fake_shank.py").read_text(encoding="utf-8"),
            encoding="utf-8",
        )
        target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return target

    return _install
