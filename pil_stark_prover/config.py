"""
Prover configuration - locating the external tool trees.

The pipeline drives two vendored source trees that live side by side under
one dependencies root:

    <deps>/pil-stark       node.js scripts (consttree, starkinfo, chelpers, verifier)
    <deps>/zkevm-prover    native prover sources and its build/zkProverTest binary

Configuration Hierarchy (highest to lowest priority):
1. Explicit arguments to ProverConfig.load()
2. Environment variables (PIL_STARK_PROVER_DEPS, PIL_STARK_PROVER_<FIELD>)
3. Config file (JSON, TOML or YAML)
4. Default values

Example:
    config = ProverConfig.load()
    print(config.pil_stark_src)

    # Point at a locally built dependency tree
    # PIL_STARK_PROVER_DEPS=/opt/pil-stark-prover/externals
"""

from __future__ import annotations

import json
import logging
import os
import tomllib
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "PIL_STARK_PROVER"
DEPS_ENV_VAR = f"{ENV_PREFIX}_DEPS"

# Location the build step vendors the external trees into.
DEFAULT_DEPS_DIR = Path(__file__).resolve().parent / "externals"

MAX_NODE_MEM_MB = 1024 * 16

CONSTTREE_FORMATS = ("bin", "json")


def _coerce_number(field_name: str, value: Any, kind: type) -> Any:
    """Convert a config value to int/float, accepting numeric strings."""
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid value for {field_name}: {value!r}")
    if kind is int and isinstance(value, float) and not value.is_integer():
        raise ConfigurationError(f"Invalid value for {field_name}: {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for {field_name}: {value!r}") from exc


@dataclass(frozen=True)
class ProverConfig:
    """Resolved configuration for one pipeline run.

    Attributes:
        deps_dir: Root directory holding ``pil-stark`` and ``zkevm-prover``
        node_binary: Program used to run the pil-stark scripts
        npm_binary: Program used for the one-shot dependency install
        cxx: Native compiler used to build the C helpers library
        node_max_old_space_mb: Heap limit passed to node
        consttree_format: "bin" or "json" constant-tree artifact
        stage_timeout_seconds: Optional bound on each external process.
            None (the default) waits indefinitely.
    """

    deps_dir: Path = DEFAULT_DEPS_DIR
    node_binary: str = "node"
    npm_binary: str = "npm"
    cxx: str = "g++"
    node_max_old_space_mb: int = MAX_NODE_MEM_MB
    consttree_format: str = "bin"
    stage_timeout_seconds: Optional[float] = None

    def __post_init__(self):
        # Absolute: the prover stage runs with cwd set to the output directory.
        try:
            deps_dir = Path(self.deps_dir).resolve()
        except TypeError as exc:
            raise ConfigurationError(f"deps_dir must be a path, got {self.deps_dir!r}") from exc
        object.__setattr__(self, "deps_dir", deps_dir)

        for name in ("node_binary", "npm_binary", "cxx"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ConfigurationError(f"{name} must be a non-empty string, got {value!r}")

        object.__setattr__(
            self,
            "node_max_old_space_mb",
            _coerce_number("node_max_old_space_mb", self.node_max_old_space_mb, int),
        )
        if self.stage_timeout_seconds is not None:
            object.__setattr__(
                self,
                "stage_timeout_seconds",
                _coerce_number("stage_timeout_seconds", self.stage_timeout_seconds, float),
            )

        if self.node_max_old_space_mb <= 0:
            raise ConfigurationError("node_max_old_space_mb must be positive")
        if self.consttree_format not in CONSTTREE_FORMATS:
            raise ConfigurationError(
                f"consttree_format must be one of {CONSTTREE_FORMATS}, got {self.consttree_format!r}"
            )
        if self.stage_timeout_seconds is not None and self.stage_timeout_seconds <= 0:
            raise ConfigurationError("stage_timeout_seconds must be positive")

    @property
    def pil_stark_root(self) -> Path:
        return self.deps_dir / "pil-stark"

    @property
    def pil_stark_src(self) -> Path:
        return self.pil_stark_root / "src"

    @property
    def zkevm_prover_dir(self) -> Path:
        return self.deps_dir / "zkevm-prover"

    @classmethod
    def load(
        cls,
        config_file: Optional[Union[str, Path]] = None,
        *,
        deps_dir: Optional[Union[str, Path]] = None,
        **overrides: Any,
    ) -> "ProverConfig":
        """Resolve configuration and check the dependencies root exists.

        Args:
            config_file: Path to config file (JSON, TOML or YAML)
            deps_dir: Explicit dependencies root, overriding everything else
            **overrides: Explicit values for any other ProverConfig field

        Returns:
            Validated configuration

        Raises:
            ConfigurationError: if the dependencies root is not a directory
                or any value is invalid
        """
        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict.update(cls._load_file(Path(config_file)))

        config_dict.update(cls._env_overrides(ENV_PREFIX))

        if deps_dir is not None:
            config_dict["deps_dir"] = deps_dir
        config_dict.update({k: v for k, v in overrides.items() if v is not None})

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config_dict) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

        config = cls(**config_dict)
        config.check_deps_dir()
        return config

    def check_deps_dir(self) -> None:
        if not self.deps_dir.is_dir():
            raise ConfigurationError(
                f"pil-stark-prover dependencies directory not found: {self.deps_dir}\n"
                f"Either set {DEPS_ENV_VAR} environment variable, or build the project "
                "locally from source."
            )
        logger.debug("Using dependencies directory %s", self.deps_dir)

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any]:
        """Load configuration from file."""
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        content = path.read_text(encoding="utf-8")

        try:
            if path.suffix == ".json":
                parsed = json.loads(content)
            elif path.suffix == ".toml":
                parsed = tomllib.loads(content)
            elif path.suffix in {".yaml", ".yml"}:
                parsed = yaml.safe_load(content)
            else:
                raise ConfigurationError(f"Unknown config file format: {path.suffix}")
        except (json.JSONDecodeError, tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Invalid config file {path}: {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigurationError("Config file must be a mapping at top level")
        return parsed

    @classmethod
    def _env_overrides(cls, prefix: str) -> Dict[str, Any]:
        """Collect PIL_STARK_PROVER_* overrides.

        PIL_STARK_PROVER_DEPS maps to deps_dir; every other variable maps to
        the lower-cased field name (PIL_STARK_PROVER_CXX -> cxx).
        """
        overrides: Dict[str, Any] = {}
        known = {f.name for f in fields(cls)}

        deps = os.environ.get(DEPS_ENV_VAR)
        if deps:
            overrides["deps_dir"] = Path(deps)

        for key, value in os.environ.items():
            if not key.startswith(f"{prefix}_") or key == DEPS_ENV_VAR:
                continue
            field_name = key[len(prefix) + 1:].lower()
            if field_name in known and field_name != "deps_dir":
                overrides[field_name] = cls._parse_env_value(field_name, value)

        return overrides

    @staticmethod
    def _parse_env_value(field_name: str, value: str) -> Any:
        """Parse environment variable value to the field's type."""
        try:
            if field_name == "node_max_old_space_mb":
                return int(value)
            if field_name == "stage_timeout_seconds":
                return float(value) if value.strip() else None
        except ValueError as exc:
            raise ConfigurationError(f"Invalid value for {field_name}: {value!r}") from exc
        return value

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["deps_dir"] = str(self.deps_dir)
        return data
