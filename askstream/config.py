"""Configuration management for the ask client."""

import os
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv

from askstream.client.models import ClientConfig
from askstream.client.retry import RetryPolicy

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")

# Primary environment variable first, then the legacy BACKEND_* name
ENV_BASE_URL = ("BASE_URL", "BACKEND_URL")
ENV_AUTH_TOKEN = ("AUTH_TOKEN", "BACKEND_AUTH_TOKEN")
ENV_API_KEY = ("API_KEY", "BACKEND_API_KEY")

HISTORY_BACKENDS = ("memory", "jsonl", "sqlite")


def _first_env(names: tuple[str, ...]) -> str | None:
    """Return the first non-empty environment value among ``names``."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


class Configuration:
    """Manages configuration and environment variables for the ask client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for credentials and service origin
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from the nearest .env file."""
        load_dotenv(find_dotenv(usecwd=True))

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary.

        Returns:
            The complete configuration dictionary.
        """
        return self._config

    def get_client_config(self) -> ClientConfig:
        """Get connection settings, with environment overrides applied.

        Returns:
            ClientConfig for the inference service.

        Raises:
            ValueError: If required client parameters are missing or invalid.
        """
        client_config = self._config.get("client", {})

        required_keys = ["base_url", "endpoint", "timeout_ms", "api_key_header"]
        for key in required_keys:
            if key not in client_config:
                raise ValueError(
                    f"client.{key} must be explicitly configured in config.yaml"
                )

        timeout_ms = client_config["timeout_ms"]
        if not isinstance(timeout_ms, int | float) or timeout_ms <= 0:
            raise ValueError("client.timeout_ms must be a positive number")

        endpoint = client_config["endpoint"]
        if not str(endpoint).startswith("/"):
            raise ValueError("client.endpoint must start with '/'")

        return ClientConfig(
            base_url=_first_env(ENV_BASE_URL) or client_config["base_url"],
            endpoint=endpoint,
            timeout=timeout_ms / 1000,
            auth_token=_first_env(ENV_AUTH_TOKEN),
            api_key=_first_env(ENV_API_KEY),
            api_key_header=client_config["api_key_header"],
        )

    def get_retry_policy(self) -> RetryPolicy:
        """Get retry and backoff settings.

        Returns:
            RetryPolicy built from the retry section.

        Raises:
            ValueError: If required retry parameters are missing or invalid.
        """
        retry_config = self._config.get("retry", {})

        required_keys = [
            "max_attempts", "initial_delay", "max_delay", "classify_errors"
        ]
        for key in required_keys:
            if key not in retry_config:
                raise ValueError(
                    f"retry.{key} must be explicitly configured in config.yaml"
                )

        # RetryPolicy validates ranges
        return RetryPolicy(
            max_attempts=int(retry_config["max_attempts"]),
            initial_delay=float(retry_config["initial_delay"]),
            max_delay=float(retry_config["max_delay"]),
            classify_errors=bool(retry_config["classify_errors"]),
        )

    def get_history_config(self) -> dict[str, Any]:
        """Get history storage configuration from YAML.

        Returns:
            History configuration dictionary.

        Raises:
            ValueError: If the backend is missing or unknown.
        """
        history_config = {**self._config.get("history", {})}

        backend = history_config.get("backend")
        if backend is None:
            raise ValueError(
                "history.backend must be explicitly configured in config.yaml"
            )
        if backend not in HISTORY_BACKENDS:
            raise ValueError(f"history.backend must be one of: {list(HISTORY_BACKENDS)}")
        if backend != "memory" and not history_config.get("path"):
            raise ValueError(
                f"history.path must be explicitly configured for backend '{backend}'"
            )

        history_config.setdefault("fsync_enabled", False)
        return history_config

    def get_session_config(self) -> dict[str, Any]:
        """Get session coordinator configuration from YAML.

        Returns:
            Session configuration dictionary.

        Raises:
            ValueError: If the default error message is missing or empty.
        """
        session_config = self._config.get("session", {})
        message = session_config.get("default_error_message")
        if not message:
            raise ValueError(
                "session.default_error_message must be explicitly configured "
                "in config.yaml"
            )
        return session_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})
