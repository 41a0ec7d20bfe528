from __future__ import annotations

import json
import logging

from .types import Idl, ProjectConfig

logger = logging.getLogger("processes.idl.enhance")


def enhance_idl(config: ProjectConfig, bin_version: str, lib_version: str) -> Idl:
    """Stamp generator provenance into the IDL written for ``config`` and return it.

    Existing ``metadata`` keys are kept; ``origin``, ``binaryVersion``,
    ``libVersion`` and (when configured) ``address`` are overwritten.
    """
    idl_path = config.idl_path
    idl: Idl = json.loads(idl_path.read_text(encoding="utf-8"))

    metadata = dict(idl.get("metadata") or {})
    metadata["origin"] = config.idl_generator
    metadata["binaryVersion"] = bin_version
    metadata["libVersion"] = lib_version
    if config.program_id is not None:
        metadata["address"] = config.program_id
    idl["metadata"] = metadata

    idl_path.write_text(json.dumps(idl, indent=2) + "\n", encoding="utf-8")
    logger.info("Enhanced IDL at %s (%s %s, lib %s)", idl_path, config.idl_generator, bin_version, lib_version)
    return idl
