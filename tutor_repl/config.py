"""
Configuration module for loading and validating environment variables.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional
from dotenv import load_dotenv


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Config:
    """REPL engine configuration loaded from environment variables."""

    def __init__(self, env_path: Optional[Path] = None):
        # Load .env file from project root
        env_path = env_path or Path(__file__).parent.parent / ".env"
        load_dotenv(dotenv_path=env_path)

        # Execution limits
        self.default_timeout = self._float("REPL_DEFAULT_TIMEOUT", 30.0)
        self.session_timeout = self._float("REPL_SESSION_TIMEOUT", 3600.0)
        self.cleanup_interval = self._float("REPL_CLEANUP_INTERVAL", 60.0)
        self.max_history = self._int("REPL_MAX_HISTORY", 100)
        self.max_output_size = self._int("REPL_MAX_OUTPUT", 10000)

        # Container settings
        self.max_memory = os.getenv("REPL_MAX_MEMORY", "128m")
        self.max_cpu = self._float("REPL_MAX_CPU", 0.5)
        self.tmpfs_size = os.getenv("REPL_TMPFS_SIZE", "100m")
        self.working_dir = os.getenv("REPL_WORKING_DIR", "/tmp")
        self.docker_host = os.getenv("DOCKER_HOST") or None

        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        self._validate()

    @staticmethod
    def _float(name: str, default: float) -> float:
        raw = os.getenv(name)
        if raw is None or raw == "":
            return default
        try:
            return float(raw)
        except ValueError:
            raise ConfigError(f"{name} must be a number, got {raw!r}")

    @staticmethod
    def _int(name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            raise ConfigError(f"{name} must be an integer, got {raw!r}")

    def image_overrides(self) -> Dict[str, str]:
        """Per-language image overrides, e.g. REPL_IMAGE_PYTHON=python:3.12-slim."""
        overrides = {}
        for key, value in os.environ.items():
            if key.startswith("REPL_IMAGE_") and value:
                overrides[key[len("REPL_IMAGE_"):].lower()] = value
        return overrides

    def _validate(self):
        """Validate that all numeric settings are in range."""
        invalid = []

        if self.default_timeout <= 0:
            invalid.append("REPL_DEFAULT_TIMEOUT")
        if self.session_timeout <= 0:
            invalid.append("REPL_SESSION_TIMEOUT")
        if self.cleanup_interval <= 0:
            invalid.append("REPL_CLEANUP_INTERVAL")
        if self.max_history < 1:
            invalid.append("REPL_MAX_HISTORY")
        if self.max_output_size < 1:
            invalid.append("REPL_MAX_OUTPUT")
        if not 0 < self.max_cpu <= 64:
            invalid.append("REPL_MAX_CPU")
        if not isinstance(logging.getLevelName(self.log_level), int):
            invalid.append("LOG_LEVEL")

        if invalid:
            raise ConfigError(
                f"Invalid values for environment variables: {', '.join(invalid)}\n"
                "Please check your .env file. See .env.example for reference."
            )


def configure_logging(level: str = "INFO") -> None:
    """Install the root log handler used by the app and the cleanup thread."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
