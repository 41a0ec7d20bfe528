from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

from .types import ProcessOutcome, SpawnError, VersionParseError

logger = logging.getLogger("processes.idl.runner")

SEMVER_PATTERN = re.compile(r"(\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?)")
_CHUNK_SIZE = 8192


async def _spawn(
    executable: str | Path,
    args: Sequence[str],
    *,
    cwd: Path | None,
) -> asyncio.subprocess.Process:
    name = str(executable)
    try:
        return await asyncio.create_subprocess_exec(
            name,
            *args,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        if cwd is not None and not Path(cwd).is_dir():
            raise SpawnError(
                f"Working directory {cwd} does not exist", executable=name, not_installed=False
            ) from e
        raise SpawnError(f"{name} is not installed!", executable=name, not_installed=True) from e
    except OSError as e:
        raise SpawnError(f"Failed to spawn {name}: {e}", executable=name, not_installed=False) from e


async def _pump(reader: asyncio.StreamReader, sink: BinaryIO) -> None:
    while True:
        chunk = await reader.read(_CHUNK_SIZE)
        if not chunk:
            return
        sink.write(chunk)
        sink.flush()


async def run(
    executable: str | Path,
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    stdout: BinaryIO | None = None,
    stderr: BinaryIO | None = None,
) -> ProcessOutcome:
    """Run ``executable`` to completion, passing its output through.

    The returned outcome is produced for every termination, including non-zero
    exit codes. A failed spawn raises :class:`SpawnError`; an error while
    passing output through is re-raised after the child has been killed.
    """
    out = stdout if stdout is not None else sys.stdout.buffer
    err = stderr if stderr is not None else sys.stderr.buffer
    proc = await _spawn(executable, args, cwd=cwd)
    assert proc.stdout is not None and proc.stderr is not None
    pumps = [
        asyncio.ensure_future(_pump(proc.stdout, out)),
        asyncio.ensure_future(_pump(proc.stderr, err)),
    ]
    try:
        await asyncio.gather(*pumps)
        returncode = await proc.wait()
    except BaseException:
        # the child must not outlive a failed or cancelled run
        for task in pumps:
            task.cancel()
        if proc.returncode is None:
            logger.warning("Killing %s (pid %s) after output passthrough failed", executable, proc.pid)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
        await asyncio.gather(*pumps, return_exceptions=True)
        raise
    logger.debug("%s exited with code %s", executable, returncode)
    return ProcessOutcome(executable=str(executable), args=list(args), returncode=returncode)


async def probe_version(
    executable: str | Path,
    pattern: re.Pattern[str] = SEMVER_PATTERN,
    *,
    flag: str = "--version",
) -> str:
    """Invoke ``executable flag`` and return the first group matched in its stdout."""
    name = str(executable)
    proc = await _spawn(executable, [flag], cwd=None)
    stdout_data, _ = await proc.communicate()
    if proc.returncode != 0:
        raise VersionParseError(
            f"{name} {flag} exited with code {proc.returncode}",
            {"executable": name, "returncode": proc.returncode},
        )
    text = stdout_data.decode("utf-8", errors="replace")
    match = pattern.search(text)
    if match is None:
        raise VersionParseError(
            f"{name} version matching failed for output: {text.strip()!r}",
            {"executable": name, "pattern": pattern.pattern},
        )
    return match.group(1)
