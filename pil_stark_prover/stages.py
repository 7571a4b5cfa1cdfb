"""Stage descriptors for every external command the pipeline issues.

Each builder returns a Stage: the exact argv, the working directory, and the
error kind raised when the command fails. This is the complete set of
subprocesses the pipeline ever launches.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Type, Union

from .config import ProverConfig
from .errors import (
    CHelpersCompileError,
    CHelpersGenError,
    ConstTreeGenError,
    NpmInstallError,
    ProofGenError,
    ProofVerifyError,
    ProverError,
    StarkInfoGenError,
)
from .layout import ArtifactLayout

PathLike = Union[str, Path]

CXX_FLAGS = (
    "-std=c++17",
    "-shared",
    "-fPIC",
    "-fopenmp",
    "-mavx2",
    "-O3",
    "-DNOMINMAX",
)

# Relative to the zkevm-prover root.
ZKEVM_INCLUDE_DIRS = (
    "src/config",
    "src/starkpil",
    "src/utils",
    "src/goldilocks/src",
    "src/rapidsnark",
)
DYNAMIC_CHELPERS_DRIVER = Path("test") / "examples" / "dynamic_chelpers.cpp"
PROVER_BINARY = Path("build") / "zkProverTest"


@dataclass(frozen=True)
class Stage:
    """One external-tool invocation.

    Attributes:
        name: Short stage identifier used in logs
        argv: Program followed by its arguments
        error: ProverError subclass raised when the stage fails
        cwd: Working directory for the process (None inherits ours)
    """

    name: str
    argv: Tuple[str, ...]
    error: Type[ProverError]
    cwd: Optional[Path] = None

    @property
    def program(self) -> str:
        return self.argv[0]

    def fail(self, returncode: Optional[int], **details: object) -> ProverError:
        return self.error(returncode, **details)


def _args(*parts: PathLike) -> Tuple[str, ...]:
    return tuple(str(p) for p in parts)


def node_command(config: ProverConfig, script: str, *args: PathLike) -> Tuple[str, ...]:
    return _args(
        config.node_binary,
        f"--max-old-space-size={config.node_max_old_space_mb}",
        config.pil_stark_src / script,
        *args,
    )


def const_tree_stage(
    config: ProverConfig,
    layout: ArtifactLayout,
    *,
    pil_json: PathLike,
    starkstruct_json: PathLike,
    constants_bin: PathLike,
) -> Stage:
    return Stage(
        name="consttree",
        argv=node_command(
            config,
            "main_buildconsttree.js",
            "-c", constants_bin,
            "-j", pil_json,
            "-s", starkstruct_json,
            "-t", layout.consttree,
            "-v", layout.verification_key_json,
        ),
        error=ConstTreeGenError,
    )


def npm_install_stage(config: ProverConfig) -> Stage:
    return Stage(
        name="npm-install",
        argv=(config.npm_binary, "install"),
        error=NpmInstallError,
        cwd=config.pil_stark_root,
    )


def stark_info_stage(
    config: ProverConfig,
    layout: ArtifactLayout,
    *,
    pil_json: PathLike,
    starkstruct_json: PathLike,
) -> Stage:
    return Stage(
        name="starkinfo",
        argv=node_command(
            config,
            "main_genstarkinfo.js",
            "-j", pil_json,
            "-s", starkstruct_json,
            "-i", layout.starkinfo_json,
        ),
        error=StarkInfoGenError,
    )


def chelpers_gen_stage(config: ProverConfig, layout: ArtifactLayout) -> Stage:
    return Stage(
        name="chelpers",
        argv=node_command(
            config,
            "main_buildchelpers.js",
            "-s", layout.starkinfo_json,
            "-c", layout.chelpers_header_dir,
            "-C", "All",
            "-b", layout.chelpers_bin,
        ),
        error=CHelpersGenError,
    )


def chelpers_compile_stage(config: ProverConfig, layout: ArtifactLayout) -> Stage:
    zkevm = config.zkevm_prover_dir
    includes = [f"-I{layout.chelpers_header_dir}"]
    includes.extend(f"-I{zkevm / rel}" for rel in ZKEVM_INCLUDE_DIRS)
    return Stage(
        name="chelpers-compile",
        argv=_args(
            config.cxx,
            *CXX_FLAGS,
            "-o", layout.dynamic_chelpers,
            zkevm / DYNAMIC_CHELPERS_DRIVER,
            *includes,
        ),
        error=CHelpersCompileError,
    )


def proof_gen_stage(
    config: ProverConfig,
    layout: ArtifactLayout,
    *,
    constants_bin: PathLike,
    commits_bin: PathLike,
) -> Stage:
    """Prover invocation, run from inside the output directory.

    Every argument is canonicalized because the working directory changes;
    a missing artifact surfaces here as FileNotFoundError.
    """
    inputs: Sequence[PathLike] = (
        constants_bin,
        layout.consttree,
        layout.starkinfo_json,
        commits_bin,
        layout.chelpers_bin,
        layout.dynamic_chelpers,
        layout.verification_key_json,
    )
    return Stage(
        name="prove",
        argv=_args(
            config.zkevm_prover_dir / PROVER_BINARY,
            *(Path(p).resolve(strict=True) for p in inputs),
        ),
        error=ProofGenError,
        cwd=layout.output_dir,
    )


def verify_stage(
    config: ProverConfig,
    *,
    verification_key_json: PathLike,
    starkinfo_json: PathLike,
    proof_json: PathLike,
    publics_json: PathLike,
) -> Stage:
    return Stage(
        name="verify",
        argv=node_command(
            config,
            "main_verifier.js",
            "-v", verification_key_json,
            "-s", starkinfo_json,
            "-o", proof_json,
            "-b", publics_json,
        ),
        error=ProofVerifyError,
    )
