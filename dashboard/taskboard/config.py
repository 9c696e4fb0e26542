# Dashboard task board: configuration
# Defaults < dashboard.yaml < environment variables < CLI args (server only).

import logging
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

CONFIG_PATH = Path("dashboard.yaml")

# Environment variable -> Settings field
ENV_OVERRIDES = {
    "DASHBOARD_DB": "db_path",
    "DASHBOARD_API_SECRET": "api_secret",
    "DASHBOARD_OWNER": "default_owner",
    "DASHBOARD_API_URL": "api_url",
    "DASHBOARD_LOG_LEVEL": "log_level",
}


@dataclass
class Settings:
    """Runtime configuration for the task board server and client."""

    # Storage
    db_path: str = "~/.local/share/dashboard/tasks.db"

    # Server
    host: str = "127.0.0.1"
    port: int = 5000
    api_secret: str = ""           # empty = mutating routes are not key-guarded
    default_owner: str = "default"  # single-user deployment

    # Client
    api_url: str = "http://localhost:5000"
    request_timeout: float = 10.0

    log_level: str = "INFO"

    def resolve_paths(self):
        """Expand ~ in filesystem paths."""
        self.db_path = str(Path(self.db_path).expanduser())

    def apply_env(self, environ=None):
        """Override fields from DASHBOARD_* environment variables."""
        environ = os.environ if environ is None else environ
        for env_name, attr in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value:
                setattr(self, attr, value)

    @classmethod
    def load(cls, path: Optional[str] = None, environ=None) -> "Settings":
        """Load settings from YAML, falling back to defaults, then apply env overrides."""
        environ = os.environ if environ is None else environ
        cfg_path = Path(path or environ.get("DASHBOARD_CONFIG") or CONFIG_PATH)
        known = {f.name for f in fields(cls)}
        cfg = cls()
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if k in known})
            except (yaml.YAMLError, TypeError, AttributeError) as e:
                logging.getLogger(__name__).warning(
                    f"Ignoring invalid config file {cfg_path}: {e}"
                )
                cfg = cls()
        cfg.apply_env(environ)
        cfg.resolve_paths()
        return cfg


def configure_logging(level: str = "INFO") -> None:
    """Log to stdout in the same line format as the rest of the dashboard."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [dashboard] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
