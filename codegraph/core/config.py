"""
codegraph.core.config -- Configuration for the codegraph server.

Supports loading from YAML, environment variables, and programmatic
construction.  Every setting has a default, so ``Config()`` alone gives
a working in-directory store at ``./codegraph.json``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from codegraph.graph.core import GRAPH_TYPES, GraphOptions

DEFAULT_GRAPH_FILE = "codegraph.json"

#: Environment variables consulted by ``Config.from_env``, in priority order.
GRAPH_PATH_ENV = ("CODEGRAPH_GRAPH_PATH", "MEMORY_FILE_PATH")
STRUCTURED_LOGS_ENV = "CODEGRAPH_STRUCTURED_LOGS"
LOG_LEVEL_ENV = "CODEGRAPH_LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Config:
    """
    Central configuration object.

    Construct directly, via ``Config.from_yaml(path)``, or via
    ``Config.from_env()`` for the environment-driven MCP launch.
    """

    # -- storage ------------------------------------------------------------
    graph_path: Path = field(default_factory=lambda: Path(DEFAULT_GRAPH_FILE))
    json_indent: Optional[int] = 2  # None writes a single line
    lock_timeout: float = 5.0  # seconds to wait for the snapshot lock

    # -- graph shape --------------------------------------------------------
    graph_type: str = "mixed"  # "mixed" | "directed" | "undirected"
    multi: bool = True
    allow_self_loops: bool = True

    # -- queries ------------------------------------------------------------
    default_max_depth: int = 1  # get_neighborhood when no depth is given

    # -- code analysis ------------------------------------------------------
    max_file_bytes: int = 1_000_000  # larger files are skipped, not chunked

    # -- logging ------------------------------------------------------------
    structured_logging: bool = False  # emit JSON log lines when True
    log_level: str = "INFO"

    # -----------------------------------------------------------------------
    # Construction helpers
    # -----------------------------------------------------------------------

    def __post_init__(self) -> None:
        # relative paths are relative to the launching process
        self.graph_path = Path(self.graph_path).expanduser().resolve()
        if self.graph_type not in GRAPH_TYPES:
            raise ValueError(
                f"graph_type must be one of {', '.join(GRAPH_TYPES)}, got {self.graph_type!r}"
            )
        if self.lock_timeout <= 0:
            raise ValueError("lock_timeout must be positive")
        if self.default_max_depth < 0:
            raise ValueError("default_max_depth must be >= 0")

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file.

        Settings may sit at the top level or under a ``codegraph:`` key.
        Unknown keys are silently ignored so the file can carry
        application-level settings alongside codegraph config.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as fh:
            raw: Dict[str, Any] = yaml.safe_load(fh) or {}

        data = raw.get("codegraph", raw)
        return cls._from_mapping(data)

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any
    ) -> "Config":
        """Build a config from environment variables plus explicit overrides."""
        env = os.environ if environ is None else environ
        data: Dict[str, Any] = {}

        for name in GRAPH_PATH_ENV:
            if env.get(name):
                data["graph_path"] = Path(env[name])
                break
        if STRUCTURED_LOGS_ENV in env:
            data["structured_logging"] = env[STRUCTURED_LOGS_ENV].strip().lower() in _TRUTHY
        if env.get(LOG_LEVEL_ENV):
            data["log_level"] = env[LOG_LEVEL_ENV].strip().upper()

        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls._from_mapping(data)

    @classmethod
    def _from_mapping(cls, data: Mapping[str, Any]) -> "Config":
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        if "graph_path" in filtered:
            filtered["graph_path"] = Path(filtered["graph_path"])
        return cls(**filtered)

    # -----------------------------------------------------------------------
    # Derived settings
    # -----------------------------------------------------------------------

    def graph_options(self) -> GraphOptions:
        return GraphOptions(
            type=self.graph_type,
            multi=self.multi,
            allow_self_loops=self.allow_self_loops,
        )

    # -----------------------------------------------------------------------
    # Serialisation
    # -----------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to a plain dict (YAML/JSON-safe)."""
        return {
            "graph_path": str(self.graph_path),
            "json_indent": self.json_indent,
            "lock_timeout": self.lock_timeout,
            "graph_type": self.graph_type,
            "multi": self.multi,
            "allow_self_loops": self.allow_self_loops,
            "default_max_depth": self.default_max_depth,
            "max_file_bytes": self.max_file_bytes,
            "structured_logging": self.structured_logging,
            "log_level": self.log_level,
        }
