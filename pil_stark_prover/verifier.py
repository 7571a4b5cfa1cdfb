"""Proof verification via pil-stark's ``main_verifier.js``.

The verifier's exit status alone is not trusted: a run only passes when it
exits with 0 AND its final stdout line is exactly the sentinel below. Every
other combination fails closed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from . import stages
from .config import ProverConfig
from .errors import ProofVerifyError
from .runner import ProcessOutcome, StageRunner

logger = logging.getLogger(__name__)

VERIFICATION_SENTINEL = "Verification Ok!!"

PathLike = Union[str, Path]


def is_verification_ok(outcome: ProcessOutcome) -> bool:
    return outcome.returncode == 0 and outcome.last_line == VERIFICATION_SENTINEL


def verify_proof(
    verification_key_json: PathLike,
    starkinfo_json: PathLike,
    proof_json: PathLike,
    publics_json: PathLike,
    *,
    config: Optional[ProverConfig] = None,
    runner: Optional[StageRunner] = None,
) -> None:
    """Verify a proof produced by generate_proof.

    The input paths are handed to the verifier as-is; missing files are
    reported by the verifier itself.

    Raises:
        ProofVerifyError: non-zero exit, or the last line is not the sentinel
        ProverIOError: the verifier could not be started
    """
    config = config or ProverConfig.load()
    runner = runner or StageRunner(timeout=config.stage_timeout_seconds)

    logger.info("Verifying proof...")
    stage = stages.verify_stage(
        config,
        verification_key_json=verification_key_json,
        starkinfo_json=starkinfo_json,
        proof_json=proof_json,
        publics_json=publics_json,
    )
    outcome = runner.run_and_capture_last_line(stage)

    if not is_verification_ok(outcome):
        logger.error(
            "Proof verification failed (exit status %s, last line %r)",
            outcome.returncode,
            outcome.last_line,
        )
        raise stage.fail(outcome.returncode, stage=stage.name, last_line=outcome.last_line)

    logger.info("Proof verified")
