"""Local Solidity compilation through py-solc-x."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import solcx
from solcx.exceptions import SolcError, SolcNotInstalled

from ..exceptions import CompileError, ValidationError
from ..types import CompileResult
from ..utils import add_hex_prefix

logger = logging.getLogger(__name__)


def compile_files(
    *source_files: str | Path,
    solc_version: str | None = None,
    **solc_options: Any,
) -> CompileResult:
    """Compile Solidity sources and collect ABI and bytecode per contract.

    Extra keyword arguments (``optimize``, ``optimize_runs``, ``base_path``,
    ...) are passed through to :func:`solcx.compile_files`. Interfaces and
    abstract contracts come back with an empty ``0x`` bytecode.
    """

    if not source_files:
        raise ValidationError("At least one source file is required", field="source_files")
    paths = [str(Path(source)) for source in source_files]
    for path in paths:
        if not Path(path).is_file():
            raise ValidationError("Source file not found", field="source_files", value=path)

    logger.info("Compiling %s with solc %s", ", ".join(paths), solc_version or "(active)")
    try:
        output = solcx.compile_files(
            paths,
            output_values=["abi", "bin"],
            solc_version=solc_version,
            **solc_options,
        )
    except SolcNotInstalled as exc:
        raise CompileError("solc is not installed", details={"solc_version": solc_version}) from exc
    except SolcError as exc:
        raise CompileError(
            f"compile {', '.join(paths)} failed",
            details={"stderr": getattr(exc, "stderr_data", None), "error": str(exc)},
        ) from exc

    result = CompileResult()
    for key, artifact in output.items():
        result.names.append(key.rsplit(":", 1)[-1])
        result.abis.append(json.dumps(artifact.get("abi", [])))
        result.bins.append(add_hex_prefix(artifact.get("bin", "")))

    logger.debug("Compiled contracts: %s", result.names)
    return result
