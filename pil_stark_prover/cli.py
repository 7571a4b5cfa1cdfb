"""Command line front end for the pil-stark proving pipeline."""

from __future__ import annotations

import argparse
import json
import os
import shutil
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .config import CONSTTREE_FORMATS, DEPS_ENV_VAR, ProverConfig
from .errors import ConfigurationError, ProofVerifyError, ProverError
from .layout import ArtifactLayout
from .logging import LoggingOptions, configure_logging, load_logging_options_from_env
from .pipeline import generate_proof
from .stages import DYNAMIC_CHELPERS_DRIVER, PROVER_BINARY
from .verifier import verify_proof

SUCCESS = "✅"
STEP = "🚀"
WARN = "⚠️"
ERROR = "❌"

EXIT_OK = 0
EXIT_STAGE_FAILED = 1
EXIT_VERIFICATION_FAILED = 2
EXIT_CONFIG_ERROR = 3

PIL_STARK_SCRIPTS = (
    "main_buildconsttree.js",
    "main_genstarkinfo.js",
    "main_buildchelpers.js",
    "main_verifier.js",
)


def _print_header(title: str) -> None:
    print(f"{STEP} {title}", file=sys.stderr)


def _load_config(args: argparse.Namespace) -> ProverConfig:
    return ProverConfig.load(
        args.config,
        deps_dir=args.deps_dir,
        consttree_format=getattr(args, "consttree_format", None),
        stage_timeout_seconds=args.timeout,
    )


def _report_failure(what: str, exc: ProverError) -> None:
    print(f"{ERROR} {what}: {exc}", file=sys.stderr)
    print(json.dumps(exc.to_dict(), sort_keys=True, indent=2), file=sys.stderr)


def _cmd_prove(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
        _print_header(f"Generating proof into {args.out}")
        output_files = generate_proof(
            Path(args.pil),
            Path(args.starkstruct),
            Path(args.constants),
            Path(args.commits),
            Path(args.out),
            config=config,
        )
    except ConfigurationError as exc:
        print(f"{ERROR} Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except ProverError as exc:
        _report_failure("Proof generation failed", exc)
        return EXIT_STAGE_FAILED

    print(f"{SUCCESS} Proof generated", file=sys.stderr)
    print(json.dumps(output_files.to_dict(), sort_keys=True, indent=2))
    return EXIT_OK


def _cmd_verify(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
        _print_header(f"Verifying proof {args.proof}")
        verify_proof(
            Path(args.verification_key),
            Path(args.starkinfo),
            Path(args.proof),
            Path(args.publics),
            config=config,
        )
    except ConfigurationError as exc:
        print(f"{ERROR} Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except ProofVerifyError as exc:
        _report_failure("Verification failed", exc)
        return EXIT_VERIFICATION_FAILED
    except ProverError as exc:
        _report_failure("Verify failed", exc)
        return EXIT_STAGE_FAILED

    print(f"{SUCCESS} Verification succeeded", file=sys.stderr)
    return EXIT_OK


def _cmd_layout(args: argparse.Namespace) -> int:
    layout = ArtifactLayout.from_output_dir(args.out, args.consttree_format)
    mapping = {name: str(path) for name, path in layout.artifacts().items()}
    print(json.dumps(mapping, indent=2))
    return EXIT_OK


def _doctor_checks(config: ProverConfig) -> List[Tuple[str, bool, str]]:
    checks: List[Tuple[str, bool, str]] = []

    for label, program in (
        ("node", config.node_binary),
        ("npm", config.npm_binary),
        ("c++ compiler", config.cxx),
    ):
        found = shutil.which(program)
        checks.append((label, found is not None, found or f"{program} not on PATH"))

    for script in PIL_STARK_SCRIPTS:
        path = config.pil_stark_src / script
        checks.append((script, path.is_file(), str(path)))

    node_modules = config.pil_stark_root / "node_modules"
    checks.append((
        "pil-stark node_modules",
        node_modules.is_dir(),
        str(node_modules) if node_modules.is_dir() else "missing (installed on first run)",
    ))

    driver = config.zkevm_prover_dir / DYNAMIC_CHELPERS_DRIVER
    checks.append(("chelpers driver", driver.is_file(), str(driver)))

    prover = config.zkevm_prover_dir / PROVER_BINARY
    checks.append((
        "zkProverTest",
        prover.is_file() and os.access(prover, os.X_OK),
        str(prover),
    ))
    return checks


def _cmd_doctor(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
    except ConfigurationError as exc:
        print(f"{ERROR} Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    checks = _doctor_checks(config)
    if args.json:
        report: Dict[str, Any] = {
            "config": config.to_dict(),
            "checks": {label: {"ok": ok, "detail": detail} for label, ok, detail in checks},
        }
        print(json.dumps(report, sort_keys=True, indent=2))
    else:
        print(f"Dependencies: {config.deps_dir}")
        for label, ok, detail in checks:
            # node_modules is optional: the pipeline installs it on demand
            marker = SUCCESS if ok else (WARN if label == "pil-stark node_modules" else ERROR)
            print(f"  {marker} {label:<24} {detail}")

    required_ok = all(ok for label, ok, _ in checks if label != "pil-stark node_modules")
    return EXIT_OK if required_ok else EXIT_STAGE_FAILED


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Config file (JSON, TOML or YAML)")
    parser.add_argument(
        "--deps-dir",
        help=f"Directory holding pil-stark and zkevm-prover (default: ${DEPS_ENV_VAR} or built-in)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Optional per-stage timeout in seconds (default: wait indefinitely)",
    )


def build_parser() -> argparse.ArgumentParser:
    env_logging = load_logging_options_from_env()

    parser = argparse.ArgumentParser(
        prog="pil-stark-prover",
        description="Generate and verify pil-stark proofs with the zkevm-prover",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--log-level", default=env_logging.level, help="Logging level")
    parser.add_argument(
        "--log-format", default=env_logging.format, choices=["text", "json"], help="Log format"
    )
    parser.add_argument("--log-file", default=env_logging.file, help="Optional rotating log file")
    sub = parser.add_subparsers(dest="command", required=True)

    p_prove = sub.add_parser("prove", help="Run the full proof generation pipeline")
    p_prove.add_argument("--pil", required=True, help="Compiled PIL constraints JSON")
    p_prove.add_argument("--starkstruct", required=True, help="STARK structure JSON")
    p_prove.add_argument("--constants", required=True, help="Constant polynomials binary")
    p_prove.add_argument("--commits", required=True, help="Committed polynomials binary")
    p_prove.add_argument("--out", required=True, help="Output directory for all artifacts")
    p_prove.add_argument(
        "--consttree-format", choices=CONSTTREE_FORMATS, help="Constant-tree artifact format"
    )
    _add_config_arguments(p_prove)
    p_prove.set_defaults(func=_cmd_prove)

    p_verify = sub.add_parser("verify", help="Verify a generated proof")
    p_verify.add_argument("--verification-key", required=True, help="verification_key.json")
    p_verify.add_argument("--starkinfo", required=True, help="starkinfo.json")
    p_verify.add_argument("--proof", required=True, help="Proof JSON (jProof.json)")
    p_verify.add_argument("--publics", required=True, help="Public inputs JSON")
    _add_config_arguments(p_verify)
    p_verify.set_defaults(func=_cmd_verify)

    p_layout = sub.add_parser("layout", help="Print the artifact paths for an output directory")
    p_layout.add_argument("--out", required=True, help="Output directory")
    p_layout.add_argument(
        "--consttree-format", choices=CONSTTREE_FORMATS, default="bin", help="Constant-tree format"
    )
    p_layout.set_defaults(func=_cmd_layout)

    p_doctor = sub.add_parser("doctor", help="Check the external toolchain is in place")
    p_doctor.add_argument("--json", action="store_true", help="Output JSON")
    _add_config_arguments(p_doctor)
    p_doctor.set_defaults(func=_cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        configure_logging(
            LoggingOptions(level=args.log_level, format=args.log_format, file=args.log_file)
        )
    except ValueError as exc:
        parser.error(str(exc))
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
