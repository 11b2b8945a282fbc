"""
Runtime configuration for the tunnel control server.

Values come from the environment (a ``.env`` file in the working directory
is loaded first) and can be overridden by CLI options.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_HOST = "127.0.0.1"
DEFAULT_API_PORT = 3002
DEFAULT_METRO_PORT = 8081
DEFAULT_PLATFORM = "expo"
DEFAULT_CLEANUP_TIMEOUT = 10.0
LOG_CAPACITY = 1000


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class TunnelConfig:
    """Settings shared by the supervisor, the server and the CLI."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_API_PORT
    project_dir: Path = field(default_factory=Path.cwd)
    metro_port: int = DEFAULT_METRO_PORT
    platform: str = DEFAULT_PLATFORM
    echo_output: bool = True
    use_pty: bool = True
    cleanup_timeout: float = DEFAULT_CLEANUP_TIMEOUT
    log_capacity: int = LOG_CAPACITY

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "TunnelConfig":
        if dotenv:
            load_dotenv()

        project_dir = os.getenv("METROTUN_PROJECT_DIR")
        return cls(
            host=os.getenv("METROTUN_HOST", DEFAULT_HOST),
            port=int(os.getenv("METROTUN_PORT", DEFAULT_API_PORT)),
            project_dir=Path(project_dir).resolve() if project_dir else Path.cwd(),
            metro_port=int(os.getenv("METROTUN_METRO_PORT", DEFAULT_METRO_PORT)),
            platform=os.getenv("METROTUN_PLATFORM", DEFAULT_PLATFORM),
            echo_output=_env_bool("METROTUN_ECHO_OUTPUT", True),
            use_pty=_env_bool("METROTUN_USE_PTY", True),
            cleanup_timeout=float(
                os.getenv("METROTUN_CLEANUP_TIMEOUT", DEFAULT_CLEANUP_TIMEOUT)
            ),
        )

    def with_overrides(self, **overrides) -> "TunnelConfig":
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        if "project_dir" in values:
            values["project_dir"] = Path(values["project_dir"]).resolve()
        return replace(self, **values)
