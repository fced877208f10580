"""
Configuration loader for the bus booking client.

Resolves settings from built-in defaults, an optional YAML file validated
against a JSON schema, and environment variables (highest priority). Also
provides the logging filter that keeps credential material out of log output.
"""

import logging
import os
import re
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""

    pass


DEFAULT_CONFIG_FILE = "config/booking.yaml"

DEFAULT_SOURCES = ["Raipur", "Bhilai", "Durg", "Bilaspur", "Jagdalpur"]
DEFAULT_DESTINATIONS = ["Puri", "Bhubaneswar", "Cuttack", "Sambalpur", "Rourkela"]

SESSION_BACKENDS = ("memory", "dynamodb")

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "base_url": {"type": "string", "pattern": "^https?://"},
        "request_timeout": {"type": "number", "exclusiveMinimum": 0},
        "seat_cache_ttl_seconds": {"type": "number", "minimum": 0},
        "routes_cache_ttl_seconds": {"type": "number", "minimum": 0},
        "seat_fetch_max_workers": {"type": "integer", "minimum": 1},
        "session_backend": {"enum": list(SESSION_BACKENDS)},
        "session_table_name": {"type": "string", "minLength": 1},
        "session_key": {"type": "string", "minLength": 1},
        "aws_region": {"type": "string", "minLength": 1},
        "default_sources": {"type": "array", "items": {"type": "string"}, "minItems": 1},
        "default_destinations": {"type": "array", "items": {"type": "string"}, "minItems": 1},
    },
}

# env var -> (setting name, converter)
ENV_OVERRIDES = {
    "BOOKING_API_BASE_URL": ("base_url", str),
    "BOOKING_API_TIMEOUT": ("request_timeout", float),
    "SEAT_CACHE_TTL_SECONDS": ("seat_cache_ttl_seconds", float),
    "ROUTES_CACHE_TTL_SECONDS": ("routes_cache_ttl_seconds", float),
    "SEAT_FETCH_MAX_WORKERS": ("seat_fetch_max_workers", int),
    "SESSION_BACKEND": ("session_backend", str),
    "SESSION_TABLE_NAME": ("session_table_name", str),
    "AWS_REGION": ("aws_region", str),
}


@dataclass(frozen=True)
class Settings:
    """
    Resolved client configuration.

    Use ``Settings.load()`` to apply the YAML file and environment overrides;
    the bare constructor yields the built-in defaults.
    """

    base_url: str = "http://localhost:8080"
    request_timeout: float = 10.0
    seat_cache_ttl_seconds: float = 60.0
    routes_cache_ttl_seconds: float = 300.0
    seat_fetch_max_workers: int = 8
    session_backend: str = "memory"
    session_table_name: str = "session"
    session_key: str = "user"
    aws_region: str = "ap-northeast-2"
    default_sources: List[str] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    default_destinations: List[str] = field(default_factory=lambda: list(DEFAULT_DESTINATIONS))

    @classmethod
    def load(
        cls,
        config_path: Optional[str] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "Settings":
        """
        Build settings from defaults, YAML file, then environment.

        Args:
            config_path: YAML file path (default: $BOOKING_CONFIG_FILE or config/booking.yaml)
            environ: Environment mapping (default: os.environ)

        Raises:
            ConfigurationError: If the file is invalid or an override cannot be parsed
        """
        env = os.environ if environ is None else environ
        explicit_path = config_path or env.get("BOOKING_CONFIG_FILE")
        path = explicit_path or DEFAULT_CONFIG_FILE

        settings = cls()
        file_values = cls._load_file(path, required=explicit_path is not None)
        if file_values:
            settings = replace(settings, **file_values)
            logger.info(f"Loaded booking configuration from {path}")

        overrides: Dict[str, Any] = {}
        for env_name, (setting_name, converter) in ENV_OVERRIDES.items():
            raw = env.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                overrides[setting_name] = converter(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}") from e

        if overrides:
            settings = replace(settings, **overrides)

        settings.validate()
        return settings

    @staticmethod
    def _load_file(path: str, required: bool) -> Dict[str, Any]:
        """
        Load and schema-validate the YAML configuration file.

        Returns:
            Dictionary of setting overrides (empty if the file is absent and optional)
        """
        if not os.path.exists(path):
            if required:
                raise ConfigurationError(f"Configuration file not found: {path}")
            logger.debug(f"No configuration file at {path}; using defaults")
            return {}

        try:
            with open(path, "r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not content:
            logger.warning(f"Empty configuration file: {path}")
            return {}

        try:
            jsonschema.validate(instance=content, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e.message}") from e

        return content

    def validate(self) -> None:
        """Check cross-field constraints not expressible through env parsing."""
        if self.session_backend not in SESSION_BACKENDS:
            raise ConfigurationError(
                f"Unknown session backend {self.session_backend!r}; "
                f"expected one of {', '.join(SESSION_BACKENDS)}"
            )
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        if self.seat_fetch_max_workers < 1:
            raise ConfigurationError("seat_fetch_max_workers must be at least 1")
        if not re.match(r"^https?://", self.base_url):
            raise ConfigurationError(f"base_url must be an http(s) URL: {self.base_url!r}")

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class SecretRedactionFilter(logging.Filter):
    """
    Logging filter that redacts credential material from log records.

    Removes explicitly registered secret values plus anything shaped like an
    Authorization header value or a token/password JSON field.
    """

    _PATTERNS = (
        (re.compile(r"(Bearer|Basic)\s+[A-Za-z0-9\-._~+/=]+"), r"\1 ***REDACTED***"),
        (
            re.compile(r'("(?:accessToken|refreshToken|jwt|token|password)"\s*:\s*)"[^"]*"'),
            r'\1"***REDACTED***"',
        ),
    )

    def __init__(self, secrets: Optional[Dict[str, Any]] = None):
        """
        Initialize filter with secrets to redact.

        Args:
            secrets: Dictionary of secrets to redact (values will be masked)
        """
        super().__init__()
        self.secrets = secrets or {}
        self.redacted_values: set[str] = set()
        if self.secrets:
            self._extract_secret_values(self.secrets)

    def add_secret(self, value: Optional[str]) -> None:
        """Register one more value to redact."""
        if isinstance(value, str) and len(value) > 3:
            self.redacted_values.add(value)

    def _extract_secret_values(self, obj: Any, max_depth: int = 5) -> None:
        """Recursively extract all secret values from nested structures."""
        if max_depth <= 0:
            return

        if isinstance(obj, dict):
            for value in obj.values():
                self._extract_secret_values(value, max_depth - 1)
        elif isinstance(obj, (list, tuple)):
            for item in obj:
                self._extract_secret_values(item, max_depth - 1)
        else:
            self.add_secret(obj)

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter and redact log record."""
        if record.args:
            record.msg = record.getMessage()
            record.args = None
        record.msg = self._redact_string(str(record.msg))
        return True

    def _redact_string(self, text: str) -> str:
        """Redact all secret values from string."""
        for secret in self.redacted_values:
            if secret in text:
                text = text.replace(secret, "***REDACTED***")
        for pattern, replacement in self._PATTERNS:
            text = pattern.sub(replacement, text)
        return text


def setup_logging_redaction(
    logger_instance: Optional[logging.Logger] = None,
    secrets: Optional[Dict[str, Any]] = None,
) -> SecretRedactionFilter:
    """
    Attach a SecretRedactionFilter to a logger (root logger by default).

    The filter is attached to the logger's handlers as well, since records
    propagated from child loggers bypass the parent logger's own filters.
    """
    target = logger_instance or logging.getLogger()
    redaction_filter = SecretRedactionFilter(secrets)
    target.addFilter(redaction_filter)
    for handler in target.handlers:
        handler.addFilter(redaction_filter)
    return redaction_filter
