"""Artifact layout under a pipeline output directory.

Pure path computation: nothing here touches the filesystem beyond resolving
the output directory to an absolute path. The names are a contract that
downstream tooling relies on to find artifacts without consulting the
pipeline's return value.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Union

VERIFICATION_KEY_JSON = "verification_key.json"
STARKINFO_JSON = "starkinfo.json"
CHELPERS_BIN = "chelpers.bin"
CHELPERS_HEADER_DIR = "chelpers"
DYNAMIC_CHELPERS = "dynamic_chelpers.so"
PROOF_OUTPUT_DIR = Path("runtime") / "output"
PROOF_JSON = "jProof.json"

_CONSTTREE_NAMES = {
    "bin": "consttree.bin",
    "json": "consttree.json",
}


def consttree_filename(consttree_format: str = "bin") -> str:
    try:
        return _CONSTTREE_NAMES[consttree_format]
    except KeyError:
        raise ValueError(f"Unknown constant-tree format: {consttree_format!r}") from None


@dataclass(frozen=True)
class ArtifactLayout:
    """Every intermediate and final artifact path of one pipeline run.

    All paths are absolute, since the prover stage runs with its working
    directory set to ``output_dir``.
    """

    output_dir: Path
    verification_key_json: Path
    consttree: Path
    starkinfo_json: Path
    chelpers_bin: Path
    chelpers_header_dir: Path
    dynamic_chelpers: Path
    proof_output_dir: Path
    proof_json: Path

    @classmethod
    def from_output_dir(
        cls, output_dir: Union[str, Path], consttree_format: str = "bin"
    ) -> "ArtifactLayout":
        root = Path(output_dir).resolve()
        proof_output_dir = root / PROOF_OUTPUT_DIR
        return cls(
            output_dir=root,
            verification_key_json=root / VERIFICATION_KEY_JSON,
            consttree=root / consttree_filename(consttree_format),
            starkinfo_json=root / STARKINFO_JSON,
            chelpers_bin=root / CHELPERS_BIN,
            chelpers_header_dir=root / CHELPERS_HEADER_DIR,
            dynamic_chelpers=root / DYNAMIC_CHELPERS,
            proof_output_dir=proof_output_dir,
            proof_json=proof_output_dir / PROOF_JSON,
        )

    def artifacts(self) -> Dict[str, Path]:
        """Logical artifact name -> path, in the order stages produce them."""
        return {
            "verification_key_json": self.verification_key_json,
            "consttree": self.consttree,
            "starkinfo_json": self.starkinfo_json,
            "chelpers_header_dir": self.chelpers_header_dir,
            "chelpers_bin": self.chelpers_bin,
            "dynamic_chelpers": self.dynamic_chelpers,
            "proof_output_dir": self.proof_output_dir,
            "proof_json": self.proof_json,
        }

    def relative_names(self) -> Dict[str, str]:
        """Artifact paths relative to the output directory, as POSIX strings."""
        return {
            name: path.relative_to(self.output_dir).as_posix()
            for name, path in self.artifacts().items()
        }
