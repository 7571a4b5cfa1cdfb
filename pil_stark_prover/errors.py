"""Error taxonomy for the proving pipeline.

Every external stage maps to exactly one error kind. Each kind carries the
exit status of the external process (``None`` when the process never
produced one, e.g. after a timeout kill) so callers can tell precisely which
stage failed and how.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ProverErrorCode(str, Enum):
    """Stage-tagged error codes.

    Using str as base class allows JSON serialization.
    """

    IO = "io"
    NPM_INSTALL = "npm_install"
    CONST_TREE_GEN = "const_tree_gen"
    STARK_INFO_GEN = "stark_info_gen"
    CHELPERS_GEN = "chelpers_gen"
    CHELPERS_COMPILE = "chelpers_compile"
    PROOF_GEN = "proof_gen"
    PROOF_VERIFY = "proof_verify"


class ConfigurationError(RuntimeError):
    """Raised when the external tool trees cannot be located or configured.

    This is fatal for the whole process and deliberately not a ProverError:
    no stage has run when it is raised.
    """


class ProverError(Exception):
    """Base class for all pipeline failures."""

    code: ProverErrorCode
    default_message = "prover error"

    def __init__(
        self,
        returncode: Optional[int] = None,
        message: Optional[str] = None,
        **details: Any,
    ):
        self.returncode = returncode
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.returncode is None:
            return self.message
        return f"{self.message} (exit status {self.returncode})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(returncode={self.returncode!r}, message={self.message!r})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "returncode": self.returncode,
            "details": self.details,
        }


class ProverIOError(ProverError):
    """A process could not be spawned or the filesystem could not be touched.

    The underlying OSError is chained as ``__cause__``.
    """

    code = ProverErrorCode.IO
    default_message = "input/output error"

    @classmethod
    def from_os_error(cls, exc: OSError, **details: Any) -> "ProverIOError":
        err = cls(None, f"input/output error: {exc}", **details)
        err.__cause__ = exc
        return err


class NpmInstallError(ProverError):
    code = ProverErrorCode.NPM_INSTALL
    default_message = "npm install error"


class ConstTreeGenError(ProverError):
    code = ProverErrorCode.CONST_TREE_GEN
    default_message = "consttree generation error"


class StarkInfoGenError(ProverError):
    code = ProverErrorCode.STARK_INFO_GEN
    default_message = "stark info generation error"


class CHelpersGenError(ProverError):
    code = ProverErrorCode.CHELPERS_GEN
    default_message = "C helpers generation error"


class CHelpersCompileError(ProverError):
    code = ProverErrorCode.CHELPERS_COMPILE
    default_message = "C helpers compilation error"


class ProofGenError(ProverError):
    code = ProverErrorCode.PROOF_GEN
    default_message = "proof generation error"


class ProofVerifyError(ProverError):
    """Verification failed: non-zero exit, or a missing/different sentinel line."""

    code = ProverErrorCode.PROOF_VERIFY
    default_message = "proof verification error"


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ProverIOError,
        NpmInstallError,
        ConstTreeGenError,
        StarkInfoGenError,
        CHelpersGenError,
        CHelpersCompileError,
        ProofGenError,
        ProofVerifyError,
    )
}
