from __future__ import annotations

import argparse
import asyncio
import logging
import os
import re
import sys
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path
from typing import Any, cast

from . import installer as binaries
from . import runner
from .config import load_config, load_project_config
from .enhance import enhance_idl
from .manifest import get_version_in_manifest
from .types import (
    ConfirmInstallFn,
    EnhanceIdlFn,
    GenerateSdkFn,
    Idl,
    IdlGenerationError,
    InstallBinaryFn,
    InstallConfig,
    InstallResolutionError,
    ProcessOutcome,
    ProjectConfig,
    SpawnError,
    VersionMismatchError,
)

logger = logging.getLogger("processes.idl")

ANCHOR_BINARY = "anchor"
ANCHOR_LIB = "anchor-lang"
ANCHOR_VERSION_PATTERN = re.compile(r"anchor-cli (\d+\.\d+\.\d+)")

SHANK_BINARY = "shank"
SHANK_CRATE = "shank-cli"
SHANK_LIB = "shank"

RunProcessFn = Callable[..., Awaitable[ProcessOutcome]]
ProbeVersionFn = Callable[..., Awaitable[str]]


def _load_impl(env_var: str, default_fn: str) -> Callable[..., Any] | None:
    override = os.environ.get(env_var)
    if not override:
        return None
    mod_name, _, fn_name = override.partition(":")
    mod = __import__(mod_name, fromlist=[fn_name or default_fn])
    return cast(Callable[..., Any], getattr(mod, fn_name or default_fn))


def _load_enhancer() -> EnhanceIdlFn:
    """Resolve the IDL enrichment step.

    ``IDL_ENHANCER_IMPL=module:function`` overrides the built-in
    :func:`enhance_idl`. Tests can monkeypatch this function.
    """
    fn = _load_impl("IDL_ENHANCER_IMPL", "enhance_idl")
    return cast(EnhanceIdlFn, fn) if fn is not None else enhance_idl


def _load_generator() -> GenerateSdkFn:
    """Resolve the SDK generator from ``SDK_GENERATOR_IMPL=module:function``.

    There is no built-in generator; without the override this raises
    ImportError, before any external process is started.
    """
    fn = _load_impl("SDK_GENERATOR_IMPL", "generate_sdk")
    if fn is None:
        raise ImportError(
            "No SDK generator available. Provide SDK_GENERATOR_IMPL or "
            "pass generate_sdk explicitly."
        )
    return cast(GenerateSdkFn, fn)


def _remove_existing_idl(config: ProjectConfig) -> None:
    if config.idl_path.exists():
        logger.info("Removing existing IDL at %s", config.idl_path)
        config.idl_path.unlink()


async def _generate(
    config: ProjectConfig,
    executable: str | Path,
    spawn_args: Sequence[str],
    *,
    bin_version: str,
    lib_version: str,
    formatting_options: Mapping[str, Any] | None,
    remaining_accounts: bool | None,
    enhance: EnhanceIdlFn,
    generate: GenerateSdkFn,
    run_process: RunProcessFn,
) -> Idl:
    if config.remove_existing_idl:
        _remove_existing_idl(config)

    try:
        outcome = await run_process(executable, spawn_args, cwd=config.program_dir)
    except SpawnError:
        logger.error("%s idl generation failed", config.program_name)
        raise
    if not outcome.succeeded:
        logger.error("%s idl generation failed", config.program_name)
        raise IdlGenerationError(
            f"{executable} exited with code {outcome.returncode} while generating "
            f"the IDL for {config.program_name}",
            {"returncode": outcome.returncode, "args": list(spawn_args)},
        )

    logger.info("IDL written to: %s", config.idl_path)
    idl = enhance(config, bin_version, lib_version)
    generate(
        idl,
        config.sdk_dir,
        formatting_options,
        config.type_aliases,
        config.serializers,
        remaining_accounts,
    )
    return idl


async def handle_anchor(
    config: ProjectConfig,
    formatting_options: Mapping[str, Any] | None = None,
    *,
    enhance: EnhanceIdlFn | None = None,
    generate: GenerateSdkFn | None = None,
    run_process: RunProcessFn = runner.run,
    probe_version: ProbeVersionFn = runner.probe_version,
) -> Idl:
    """Generate the IDL with the ``anchor`` found on PATH.

    The CLI version must equal the ``anchor-lang`` version in the program's
    Cargo.toml; nothing is spawned otherwise.
    """
    enhance = enhance or _load_enhancer()
    generate = generate or _load_generator()

    anchor_cli_version = await probe_version(ANCHOR_BINARY, ANCHOR_VERSION_PATTERN)
    cargo_anchor_version = get_version_in_manifest(config.cargo_toml, ANCHOR_LIB)
    if anchor_cli_version != cargo_anchor_version:
        raise VersionMismatchError(
            f"Anchor version mismatch! Selected anchor cli: {anchor_cli_version}, "
            f"in Cargo.toml: {cargo_anchor_version}",
            bin_version=anchor_cli_version,
            lib_version=cargo_anchor_version,
        )

    return await _generate(
        config,
        ANCHOR_BINARY,
        ["build", "--idl", str(config.idl_dir)],
        bin_version=anchor_cli_version,
        lib_version=cargo_anchor_version,
        formatting_options=formatting_options,
        remaining_accounts=config.anchor_remaining_accounts,
        enhance=enhance,
        generate=generate,
        run_process=run_process,
    )


def shank_install_config(config: ProjectConfig) -> InstallConfig:
    return InstallConfig(
        root_dir=config.binary_install_dir,
        binary_name=SHANK_BINARY,
        binary_crate_name=SHANK_CRATE,
        lib_name=SHANK_LIB,
        cargo_toml=config.cargo_toml,
        dry_run=False,
    )


async def handle_shank(
    config: ProjectConfig,
    formatting_options: Mapping[str, Any] | None = None,
    *,
    confirm: ConfirmInstallFn = binaries.confirm_auto_message_log,
    install_binary: InstallBinaryFn = binaries.cargo_install,
    enhance: EnhanceIdlFn | None = None,
    generate: GenerateSdkFn | None = None,
    run_process: RunProcessFn = runner.run,
) -> Idl:
    spawn_args = ["idl", "--out-dir", str(config.idl_dir), "--crate-root", str(config.program_dir)]
    return await handle(
        config,
        shank_install_config(config),
        spawn_args,
        formatting_options,
        remaining_accounts=False,
        confirm=confirm,
        install_binary=install_binary,
        enhance=enhance,
        generate=generate,
        run_process=run_process,
    )


async def handle(
    config: ProjectConfig,
    install_config: InstallConfig,
    spawn_args: Sequence[str],
    formatting_options: Mapping[str, Any] | None = None,
    remaining_accounts: bool | None = None,
    *,
    confirm: ConfirmInstallFn = binaries.confirm_auto_message_log,
    install_binary: InstallBinaryFn = binaries.cargo_install,
    enhance: EnhanceIdlFn | None = None,
    generate: GenerateSdkFn | None = None,
    run_process: RunProcessFn = runner.run,
) -> Idl:
    """Generate the IDL with a binary resolved (and installed if needed) under the install root."""
    enhance = enhance or _load_enhancer()
    generate = generate or _load_generator()

    match = await binaries.resolve_or_install(install_config, confirm, installer=install_binary)
    if match.bin_version is None:
        raise InstallResolutionError(
            f"Unable to determine installed version of {install_config.binary_name}, "
            "it may not have been installed correctly.",
            {"path": str(match.full_path_to_binary), "lib_version": match.lib_version},
        )

    return await _generate(
        config,
        match.full_path_to_binary,
        spawn_args,
        bin_version=match.bin_version,
        lib_version=match.lib_version,
        formatting_options=formatting_options,
        remaining_accounts=remaining_accounts,
        enhance=enhance,
        generate=generate,
        run_process=run_process,
    )


async def handle_config(
    config: ProjectConfig,
    formatting_options: Mapping[str, Any] | None = None,
    *,
    confirm: ConfirmInstallFn = binaries.confirm_auto_message_log,
    install_binary: InstallBinaryFn = binaries.cargo_install,
    enhance: EnhanceIdlFn | None = None,
    generate: GenerateSdkFn | None = None,
    run_process: RunProcessFn = runner.run,
    probe_version: ProbeVersionFn = runner.probe_version,
) -> Idl:
    """Run the generator named by ``config.idl_generator``.

    ``confirm`` and ``install_binary`` only apply to shank; ``probe_version``
    only to anchor. Options a variant does not take are not passed on.
    """
    if config.idl_generator == "anchor":
        return await handle_anchor(
            config,
            formatting_options,
            enhance=enhance,
            generate=generate,
            run_process=run_process,
            probe_version=probe_version,
        )
    return await handle_shank(
        config,
        formatting_options,
        confirm=confirm,
        install_binary=install_binary,
        enhance=enhance,
        generate=generate,
        run_process=run_process,
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m processes.idl",
        description="Generate a program IDL with anchor or shank and render its SDK",
    )
    p.add_argument("--config", type=Path, required=True, help="Project config (YAML or JSON)")
    p.add_argument("--config-kv", nargs="*", help="Inline key=value overrides")
    p.add_argument("--formatting", type=Path, help="SDK formatting options (YAML or JSON)")
    p.add_argument("--verbose", action="store_true")
    return p


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_project_config(args.config, args.config_kv)
        formatting = load_config(args.formatting) if args.formatting else None
        if args.verbose:
            print("[idl] plan:", file=sys.stderr)
            print(f"  - {config.idl_generator}: {config.program_dir} -> {config.idl_path}", file=sys.stderr)
            print(f"  - sdk: {config.sdk_dir}", file=sys.stderr)
        asyncio.run(handle_config(config, formatting))
    except Exception as e:
        print(f"[idl] error: {e}", file=sys.stderr)
        return 1
    return 0
