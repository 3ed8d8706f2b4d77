"""Configuration of a supervised OpenCode server."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from typing import Any

from .staging import FileSet


DEFAULT_COMMAND = ("opencode",)
DEFAULT_HOSTNAME = "127.0.0.1"


@dataclass(frozen=True)
class OpencodeConfig:
    """How to launch and reach an OpenCode server.

    Attributes:
        addr: ``host:port`` of the server; empty to pick a free port on start
        config_dir: Isolated home/config directory; empty to use the ambient one
        api_key: Credential passed to the server as ``OPENCODE_API_KEY``
        config_files: File set staged into a fresh config directory on start
        cwd: Working directory of the server process
        command: Argument vector prefix of the agent binary
        hostname: Interface the server binds to
        start_grace: Seconds to wait before checking the process is alive
        stop_timeout: Seconds to wait for a terminated process before killing it
    """

    addr: str = ""
    config_dir: str = ""
    api_key: str | None = None
    config_files: FileSet | None = None
    cwd: str | None = None
    command: tuple[str, ...] = DEFAULT_COMMAND
    hostname: str = DEFAULT_HOSTNAME
    start_grace: float = 0.5
    stop_timeout: float = 5.0

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> OpencodeConfig:
        """Build a config from ``OPENCODE_*`` variables, then apply overrides."""
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {
            "addr": env.get("OPENCODE_ADDR", ""),
            "config_dir": env.get("OPENCODE_CONFIG_DIR", ""),
            "api_key": env.get("OPENCODE_API_KEY") or None,
        }
        if env.get("OPENCODE_BIN"):
            values["command"] = (env["OPENCODE_BIN"],)
        values.update(overrides)
        return cls(**values)
