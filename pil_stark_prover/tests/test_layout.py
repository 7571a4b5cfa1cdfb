from __future__ import annotations

from pathlib import Path

import pytest

from pil_stark_prover.layout import ArtifactLayout, consttree_filename

EXPECTED_NAMES = {
    "verification_key_json": "verification_key.json",
    "consttree": "consttree.bin",
    "starkinfo_json": "starkinfo.json",
    "chelpers_header_dir": "chelpers",
    "chelpers_bin": "chelpers.bin",
    "dynamic_chelpers": "dynamic_chelpers.so",
    "proof_output_dir": "runtime/output",
    "proof_json": "runtime/output/jProof.json",
}


def test_layout_names_are_fixed(tmp_path: Path) -> None:
    layout = ArtifactLayout.from_output_dir(tmp_path / "out")
    assert layout.relative_names() == EXPECTED_NAMES


def test_layout_paths_are_absolute_for_relative_output_dir(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    layout = ArtifactLayout.from_output_dir("out")

    assert layout.output_dir == (tmp_path / "out").resolve()
    assert all(path.is_absolute() for path in layout.artifacts().values())


def test_layout_does_not_touch_filesystem(tmp_path: Path) -> None:
    ArtifactLayout.from_output_dir(tmp_path / "never-created")
    assert not (tmp_path / "never-created").exists()


def test_json_consttree_format(tmp_path: Path) -> None:
    layout = ArtifactLayout.from_output_dir(tmp_path, "json")
    assert layout.consttree.name == "consttree.json"


def test_unknown_consttree_format() -> None:
    with pytest.raises(ValueError):
        consttree_filename("hex")


def test_artifacts_in_stage_order(tmp_path: Path) -> None:
    names = list(ArtifactLayout.from_output_dir(tmp_path).artifacts())
    assert names.index("verification_key_json") < names.index("starkinfo_json")
    assert names.index("chelpers_bin") < names.index("dynamic_chelpers")
    assert names[-1] == "proof_json"
