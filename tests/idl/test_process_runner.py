from __future__ import annotations

import asyncio
import io
import re
import sys
import time
from pathlib import Path

import pytest

from processes.idl import runner
from processes.idl.types import SpawnError, VersionParseError


def _python(code: str) -> list[str]:
    return ["-c", code]


def test_run_passes_output_through(tmp_path: Path):
    out, err = io.BytesIO(), io.BytesIO()
    code = "import sys, os; print('idl ok'); print('warn', file=sys.stderr); print(os.getcwd())"
    outcome = asyncio.run(runner.run(sys.executable, _python(code), cwd=tmp_path, stdout=out, stderr=err))

    assert outcome.returncode == 0
    assert outcome.succeeded
    lines = out.getvalue().decode().splitlines()
    assert lines[0] == "idl ok"
    assert Path(lines[1]).resolve() == tmp_path.resolve()
    assert err.getvalue().decode().strip() == "warn"


def test_run_resolves_on_nonzero_exit():
    out, err = io.BytesIO(), io.BytesIO()
    outcome = asyncio.run(
        runner.run(sys.executable, _python("import sys; sys.exit(3)"), stdout=out, stderr=err)
    )
    assert outcome.returncode == 3
    assert not outcome.succeeded


def test_run_missing_executable_is_not_installed():
    with pytest.raises(SpawnError) as ei:
        asyncio.run(runner.run("definitely-not-an-idl-tool-xyz", ["idl"]))
    assert ei.value.not_installed is True
    assert "not installed" in str(ei.value)


def test_run_missing_cwd_is_other_spawn_failure(tmp_path: Path):
    with pytest.raises(SpawnError) as ei:
        asyncio.run(runner.run(sys.executable, _python("pass"), cwd=tmp_path / "missing"))
    assert ei.value.not_installed is False


class _ClosedPipe(io.BytesIO):
    def write(self, data):  # type: ignore[override]
        raise BrokenPipeError("downstream closed")


def test_run_kills_child_when_output_sink_fails(tmp_path: Path):
    marker = tmp_path / "still-running"
    code = (
        "import pathlib, time; print('building', flush=True); time.sleep(1); "
        f"pathlib.Path({str(marker)!r}).write_text('alive')"
    )
    with pytest.raises(BrokenPipeError):
        asyncio.run(runner.run(sys.executable, _python(code), stdout=_ClosedPipe(), stderr=io.BytesIO()))

    time.sleep(1.5)
    assert not marker.exists()


def _tool(tmp_path: Path, code: str) -> str:
    # The interpreter stands in for the tool: `python <script>` instead of `tool --version`
    script = tmp_path / "tool.py"
    script.write_text(code, encoding="utf-8")
    return str(script)


ANCHOR_PATTERN = re.compile(r"anchor-cli (\d+\.\d+\.\d+)")


def test_probe_version_matches_pattern(tmp_path: Path):
    flag = _tool(tmp_path, "print('anchor-cli 0.27.0')")
    assert asyncio.run(runner.probe_version(sys.executable, ANCHOR_PATTERN, flag=flag)) == "0.27.0"


def test_probe_version_default_pattern_finds_semver(tmp_path: Path):
    flag = _tool(tmp_path, "print('shank-cli 0.0.12')")
    assert asyncio.run(runner.probe_version(sys.executable, flag=flag)) == "0.0.12"


def test_probe_version_unmatched_output(tmp_path: Path):
    flag = _tool(tmp_path, "print('anchor version unknown')")
    with pytest.raises(VersionParseError, match="version matching failed"):
        asyncio.run(runner.probe_version(sys.executable, ANCHOR_PATTERN, flag=flag))


def test_probe_version_nonzero_exit(tmp_path: Path):
    flag = _tool(tmp_path, "import sys; print('anchor-cli 0.27.0'); sys.exit(2)")
    with pytest.raises(VersionParseError, match="exited with code 2"):
        asyncio.run(runner.probe_version(sys.executable, ANCHOR_PATTERN, flag=flag))


def test_probe_version_missing_tool():
    with pytest.raises(SpawnError) as ei:
        asyncio.run(runner.probe_version("anchor-not-on-this-path-xyz", ANCHOR_PATTERN))
    assert ei.value.not_installed is True
