"""Proof generation pipeline.

Runs the five generation stages in fixed order:

    1. constant tree + verification key   (pil-stark main_buildconsttree.js)
    2. stark info                         (pil-stark main_genstarkinfo.js)
    3. C helpers code                     (pil-stark main_buildchelpers.js)
    4. C helpers shared library           (g++)
    5. proof                              (zkevm-prover build/zkProverTest)

Stage 1 is the only stage with a recovery branch: its first failure is taken
as a hint that pil-stark's node dependencies are not installed yet, so
``npm install`` runs once and stage 1 is retried once. A stage 1 timeout is
not retried. Any other failure stops the pipeline; artifacts already written
are left in place.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from . import stages
from .config import ProverConfig
from .errors import ConstTreeGenError, ProverIOError
from .layout import ArtifactLayout
from .runner import StageRunner

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OutputFiles:
    """Artifacts a caller needs after a successful run (e.g. to verify)."""

    verification_key_json: Path
    starkinfo_json: Path
    proof_json: Path

    def to_dict(self) -> Dict[str, str]:
        return {
            "verification_key_json": str(self.verification_key_json),
            "starkinfo_json": str(self.starkinfo_json),
            "proof_json": str(self.proof_json),
        }


def _check_inputs(**inputs: Path) -> None:
    for name, path in inputs.items():
        if not path.is_file():
            raise ProverIOError.from_os_error(
                FileNotFoundError(2, f"{name} not found", str(path)), input=name
            )
        if not os.access(path, os.R_OK):
            raise ProverIOError.from_os_error(
                PermissionError(13, f"{name} is not readable", str(path)), input=name
            )


def _make_dirs(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ProverIOError.from_os_error(exc, path=str(path)) from exc


def _build_const_tree(
    runner: StageRunner, config: ProverConfig, stage: stages.Stage
) -> None:
    try:
        runner.run_to_completion(stage)
        return
    except ConstTreeGenError as exc:
        # A hung script is not a missing-dependency symptom.
        if exc.details.get("timed_out"):
            raise
        logger.warning(
            "Const tree generation failed, but this might be just missing dependencies."
        )

    logger.info("Trying to install npm dependencies...")
    runner.run_to_completion(stages.npm_install_stage(config))

    logger.info("Retrying constants merkle tree generation...")
    runner.run_to_completion(stage)


def generate_proof(
    pil_json: PathLike,
    starkstruct_json: PathLike,
    constants_bin: PathLike,
    commits_bin: PathLike,
    output_dir: PathLike,
    *,
    config: Optional[ProverConfig] = None,
    runner: Optional[StageRunner] = None,
) -> OutputFiles:
    """Generate a proof for the given constraint system and witness.

    Args:
        pil_json: Compiled PIL constraint document
        starkstruct_json: STARK structure parameters
        constants_bin: Constant polynomials
        commits_bin: Committed polynomials (witness)
        output_dir: Directory receiving every artifact; created if absent
        config: Resolved configuration (default: ProverConfig.load())
        runner: Stage runner (default: built from config)

    Returns:
        OutputFiles with the verification key, stark info and proof paths.

    Raises:
        ConfigurationError: dependencies root could not be resolved
        ProverIOError: an input is missing or a process could not start
        ProverError: the subclass matching the stage that failed
    """
    config = config or ProverConfig.load()
    runner = runner or StageRunner(timeout=config.stage_timeout_seconds)
    layout = ArtifactLayout.from_output_dir(output_dir, config.consttree_format)

    pil_json = Path(pil_json)
    starkstruct_json = Path(starkstruct_json)
    constants_bin = Path(constants_bin)
    commits_bin = Path(commits_bin)
    _check_inputs(
        pil_json=pil_json,
        starkstruct_json=starkstruct_json,
        constants_bin=constants_bin,
        commits_bin=commits_bin,
    )
    _make_dirs(layout.output_dir)

    logger.info("Generating constants merkle tree...")
    _build_const_tree(
        runner,
        config,
        stages.const_tree_stage(
            config,
            layout,
            pil_json=pil_json,
            starkstruct_json=starkstruct_json,
            constants_bin=constants_bin,
        ),
    )

    logger.info("Generating STARK info...")
    runner.run_to_completion(
        stages.stark_info_stage(
            config, layout, pil_json=pil_json, starkstruct_json=starkstruct_json
        )
    )

    logger.info("Generating C helpers...")
    runner.run_to_completion(stages.chelpers_gen_stage(config, layout))

    logger.info("Compiling C helpers into a shared library...")
    runner.run_to_completion(stages.chelpers_compile_stage(config, layout))

    logger.info("Generating proof...")
    _make_dirs(layout.proof_output_dir)
    try:
        prove = stages.proof_gen_stage(
            config, layout, constants_bin=constants_bin, commits_bin=commits_bin
        )
    except OSError as exc:
        raise ProverIOError.from_os_error(exc, stage="prove") from exc
    runner.run_to_completion(prove)

    logger.info("Proof written to %s", layout.proof_json)
    return OutputFiles(
        verification_key_json=layout.verification_key_json,
        starkinfo_json=layout.starkinfo_json,
        proof_json=layout.proof_json,
    )
