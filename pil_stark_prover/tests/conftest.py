"""Shared pytest fixtures for pil_stark_prover tests.

The ``fake_toolchain`` fixture lays out a dependencies root that looks like
the real one (pil-stark scripts, zkevm-prover driver source and prover
binary) and provides stand-ins for node, npm and g++. Every stand-in is a
small Python script that writes the artifacts the real tool would write and
appends one JSON line per invocation to ``calls.jsonl``.

Setting ``FAKE_TOOLCHAIN_FAIL`` to a tool or script name (``npm``, ``g++``,
``zkProverTest``, ``main_genstarkinfo.js`` ...) makes that tool exit with 3.
``FAKE_TOOLCHAIN_HANG`` names a pil-stark script that sleeps instead.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import pytest

from pil_stark_prover.config import ENV_PREFIX, ProverConfig

_TOOL_BODY = r'''
import json
import os
import sys
import time
from pathlib import Path


def record(name):
    entry = {"tool": name, "argv": sys.argv[1:], "cwd": os.getcwd()}
    with Path(LOG).open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(entry) + "\n")


def injected_failure(name):
    if os.environ.get("FAKE_TOOLCHAIN_FAIL") == name:
        print(f"{name}: injected failure", file=sys.stderr)
        return True
    return False


def pairs(args):
    return dict(zip(args[::2], args[1::2]))


def node():
    script = Path(sys.argv[2])
    name = script.name
    record(name)
    if injected_failure(name):
        return 3
    if os.environ.get("FAKE_TOOLCHAIN_HANG") == name:
        time.sleep(60)
    if not sys.argv[1].startswith("--max-old-space-size="):
        return 9
    args = pairs(sys.argv[3:])

    if name == "main_buildconsttree.js":
        if not (script.parent.parent / "node_modules").is_dir():
            print("Error: Cannot find module 'ffjavascript'", file=sys.stderr)
            return 1
        Path(args["-t"]).write_bytes(b"consttree")
        Path(args["-v"]).write_text(json.dumps({"constRoot": [1, 2, 3, 4]}))
    elif name == "main_genstarkinfo.js":
        Path(args["-i"]).write_text(json.dumps({"nPublics": 1}))
    elif name == "main_buildchelpers.js":
        Path(args["-c"]).mkdir(parents=True, exist_ok=True)
        Path(args["-b"]).write_bytes(b"chelpers")
    elif name == "main_verifier.js":
        for flag in ("-v", "-s", "-o", "-b"):
            if not Path(args[flag]).is_file():
                print(f"File not found: {args[flag]}")
                return 1
        print("Starting verification...")
        proof = json.loads(Path(args["-o"]).read_text())
        if proof.get("tampered"):
            print("Invalid proof")
            return 0
        print("Verification Ok!!")
    else:
        print(f"unknown script {name}", file=sys.stderr)
        return 1
    return 0


def npm():
    record("npm")
    if injected_failure("npm"):
        return 3
    if sys.argv[1:] != ["install"]:
        return 1
    Path("node_modules").mkdir(exist_ok=True)
    return 0


def cxx():
    record("g++")
    if injected_failure("g++"):
        return 3
    out = sys.argv[sys.argv.index("-o") + 1]
    Path(out).write_bytes(b"\x7fELF")
    return 0


def prover():
    record("zkProverTest")
    if injected_failure("zkProverTest"):
        return 3
    inputs = sys.argv[1:]
    if len(inputs) != 7 or not all(os.path.isabs(p) and os.path.isfile(p) for p in inputs):
        print("zkProverTest: bad arguments", file=sys.stderr)
        return 1
    out = Path("runtime") / "output"
    if not out.is_dir():
        print("zkProverTest: runtime/output missing", file=sys.stderr)
        return 1
    (out / "jProof.json").write_text(json.dumps({"root1": [0, 0, 0, 0]}))
    return 0


sys.exit({"node": node, "npm": npm, "g++": cxx, "zkProverTest": prover}[ROLE]())
'''

PIL_STARK_SCRIPTS = (
    "main_buildconsttree.js",
    "main_genstarkinfo.js",
    "main_buildchelpers.js",
    "main_verifier.js",
)


def _write_tool(path: Path, role: str, log: Path) -> Path:
    header = f"#!{sys.executable}\nROLE = {role!r}\nLOG = {str(log)!r}\n"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(header + _TOOL_BODY, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@dataclass
class FakeToolchain:
    root: Path
    deps_dir: Path
    node: Path
    npm: Path
    cxx: Path
    log: Path

    @property
    def config(self) -> ProverConfig:
        return ProverConfig(
            deps_dir=self.deps_dir,
            node_binary=str(self.node),
            npm_binary=str(self.npm),
            cxx=str(self.cxx),
        )

    @property
    def node_modules(self) -> Path:
        return self.deps_dir / "pil-stark" / "node_modules"

    def install_node_modules(self) -> None:
        self.node_modules.mkdir(exist_ok=True)

    def env(self) -> Dict[str, str]:
        """Environment variables that point ProverConfig.load() at this toolchain."""
        return {
            f"{ENV_PREFIX}_DEPS": str(self.deps_dir),
            f"{ENV_PREFIX}_NODE_BINARY": str(self.node),
            f"{ENV_PREFIX}_NPM_BINARY": str(self.npm),
            f"{ENV_PREFIX}_CXX": str(self.cxx),
        }

    def calls(self) -> List[Dict[str, Any]]:
        if not self.log.exists():
            return []
        lines = self.log.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line]

    def tools(self) -> List[str]:
        return [call["tool"] for call in self.calls()]


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Strip PIL_STARK_PROVER_* variables and reset our logger after each test."""
    for key in list(os.environ):
        if key.startswith(f"{ENV_PREFIX}_") or key in ("FAKE_TOOLCHAIN_FAIL", "FAKE_TOOLCHAIN_HANG"):
            monkeypatch.delenv(key, raising=False)
    yield
    logger = logging.getLogger("pil_stark_prover")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fake_toolchain(tmp_path: Path) -> FakeToolchain:
    """Dependencies root plus stand-in node/npm/g++/zkProverTest.

    pil-stark's node_modules is absent, as on a fresh checkout.
    """
    root = tmp_path / "toolchain"
    deps = root / "deps"
    log = root / "calls.jsonl"

    src = deps / "pil-stark" / "src"
    src.mkdir(parents=True)
    for script in PIL_STARK_SCRIPTS:
        (src / script).write_text("// stand-in\n", encoding="utf-8")

    zkevm = deps / "zkevm-prover"
    driver = zkevm / "test" / "examples" / "dynamic_chelpers.cpp"
    driver.parent.mkdir(parents=True)
    driver.write_text("// stand-in\n", encoding="utf-8")
    _write_tool(zkevm / "build" / "zkProverTest", "zkProverTest", log)

    bin_dir = root / "bin"
    return FakeToolchain(
        root=root,
        deps_dir=deps,
        node=_write_tool(bin_dir / "node", "node", log),
        npm=_write_tool(bin_dir / "npm", "npm", log),
        cxx=_write_tool(bin_dir / "g++", "g++", log),
        log=log,
    )


@pytest.fixture
def proof_inputs(tmp_path: Path) -> Dict[str, Path]:
    """The four pipeline inputs plus a publics file, under test-data/."""
    data = tmp_path / "test-data"
    data.mkdir()
    files = {
        "pil_json": data / "constraints.json",
        "starkstruct_json": data / "starkstruct.json",
        "constants_bin": data / "constants.bin",
        "commits_bin": data / "commits.bin",
        "publics_json": data / "publics.json",
    }
    files["pil_json"].write_text(json.dumps({"nCommitments": 2, "nConstants": 1}), encoding="utf-8")
    files["starkstruct_json"].write_text(
        json.dumps({"nBits": 4, "nBitsExt": 5, "nQueries": 8, "steps": [{"nBits": 5}]}),
        encoding="utf-8",
    )
    files["constants_bin"].write_bytes(b"\x00" * 32)
    files["commits_bin"].write_bytes(b"\x01" * 64)
    files["publics_json"].write_text("[\"1\"]", encoding="utf-8")
    return files
