"""Runtime settings loader for mysqlboot."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from mysqlboot.errors import OrchestratorError


class ConfigLoader:
    """Loads the optional YAML file with orchestrator runtime settings."""

    SUPPORTED_KEYS = {
        "data_dir",
        "config_dir",
        "init_dir",
        "socket",
        "mysqld",
        "mysql_client",
        "startup_timeout",
        "shutdown_grace_seconds",
        "retry_count",
        "retry_backoff_seconds",
        "retry_backoff_max_seconds",
        "status_poll_count",
        "status_poll_interval",
        "verbose",
        "log_file",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise OrchestratorError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise OrchestratorError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise OrchestratorError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise OrchestratorError(f"Unknown configuration keys: {unknown_list}")

        return parsed
