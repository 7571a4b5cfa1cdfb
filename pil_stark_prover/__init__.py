"""pil-stark proving pipeline.

Drives the pil-stark node.js tooling and the zkevm-prover binary to turn a
compiled PIL constraint system plus a witness into a STARK proof, and checks
proofs with the pil-stark verifier.
"""

from .config import ProverConfig
from .errors import (
    CHelpersCompileError,
    CHelpersGenError,
    ConfigurationError,
    ConstTreeGenError,
    NpmInstallError,
    ProofGenError,
    ProofVerifyError,
    ProverError,
    ProverErrorCode,
    ProverIOError,
    StarkInfoGenError,
)
from .layout import ArtifactLayout
from .logging import LoggingOptions, configure_logging
from .pipeline import OutputFiles, generate_proof
from .runner import ProcessOutcome, StageRunner
from .verifier import VERIFICATION_SENTINEL, verify_proof

__version__ = "0.1.0"

__all__ = [
    "generate_proof",
    "verify_proof",
    "OutputFiles",
    "ArtifactLayout",
    "ProverConfig",
    "StageRunner",
    "ProcessOutcome",
    "VERIFICATION_SENTINEL",
    "ProverErrorCode",
    "ProverError",
    "ProverIOError",
    "NpmInstallError",
    "ConstTreeGenError",
    "StarkInfoGenError",
    "CHelpersGenError",
    "CHelpersCompileError",
    "ProofGenError",
    "ProofVerifyError",
    "ConfigurationError",
    "LoggingOptions",
    "configure_logging",
]
