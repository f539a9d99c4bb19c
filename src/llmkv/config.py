"""Typed gateway configuration loaded from mappings, JSON files, or env vars."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .constants import (
    DEFAULT_KEYRING_SERVICE,
    DEFAULT_STORE_PATH,
    ENV_COMPRESSION_THRESHOLD,
    ENV_ENCRYPTION_KEY,
    ENV_KEEPALIVE_INTERVAL,
    ENV_KEYRING_SERVICE,
    ENV_MAX_COMPARE_TARGETS,
    ENV_RETRY_ATTEMPTS,
    ENV_STORE,
    ENV_STORE_PATH,
    ENV_TIMEOUT,
)
from .context.window import (
    DEFAULT_IMAGE_TOKEN_SURCHARGE,
    DEFAULT_KEEP_LAST_N,
    DEFAULT_THRESHOLD_RATIO,
)
from .errors import ConfigError
from .timeouts import (
    DEFAULT_TIMEOUT_SEC,
    SINK_PERSIST_INTERVAL_SEC,
    STANDARD_RETRY_ATTEMPTS,
    STREAM_KEEPALIVE_INTERVAL_SEC,
)

STORE_KINDS = ("memory", "json", "keyring")
DEFAULT_MAX_COMPARE_TARGETS = 6

_KNOWN_KEYS = {
    "encryption_key",
    "store",
    "store_path",
    "keyring_service",
    "timeout",
    "retry_attempts",
    "keepalive_interval",
    "persist_interval",
    "compression_threshold",
    "image_token_surcharge",
    "keep_last_n",
    "max_compare_targets",
    "base_urls",
    "model_limits",
}

# env var -> (config key, parser name)
_ENV_FIELDS: dict[str, tuple[str, str]] = {
    ENV_ENCRYPTION_KEY: ("encryption_key", "str"),
    ENV_STORE: ("store", "str"),
    ENV_STORE_PATH: ("store_path", "str"),
    ENV_KEYRING_SERVICE: ("keyring_service", "str"),
    ENV_TIMEOUT: ("timeout", "float"),
    ENV_RETRY_ATTEMPTS: ("retry_attempts", "int"),
    ENV_KEEPALIVE_INTERVAL: ("keepalive_interval", "float"),
    ENV_COMPRESSION_THRESHOLD: ("compression_threshold", "float"),
    ENV_MAX_COMPARE_TARGETS: ("max_compare_targets", "int"),
}


def _number(raw: Mapping[str, Any], key: str, default: int | float) -> int | float:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number")
    if value < 0:
        raise ConfigError(f"'{key}' must be non-negative")
    return value


def _integer(raw: Mapping[str, Any], key: str, default: int, minimum: int) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{key}' must be an integer")
    if value < minimum:
        raise ConfigError(f"'{key}' must be at least {minimum}")
    return value


def _string(raw: Mapping[str, Any], key: str, default: str | None) -> str | None:
    value = raw.get(key, default)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{key}' must be a non-empty string")
    return value.strip()


@dataclass(slots=True)
class GatewayConfig:
    """Runtime settings for the vault, adapters, relay and context manager."""

    encryption_key: str | None = field(default=None, repr=False)
    store: str = "json"
    store_path: str = DEFAULT_STORE_PATH
    keyring_service: str = DEFAULT_KEYRING_SERVICE
    timeout: int | float = DEFAULT_TIMEOUT_SEC
    retry_attempts: int = STANDARD_RETRY_ATTEMPTS
    keepalive_interval: int | float = STREAM_KEEPALIVE_INTERVAL_SEC
    persist_interval: int | float = SINK_PERSIST_INTERVAL_SEC
    compression_threshold: float = DEFAULT_THRESHOLD_RATIO
    image_token_surcharge: int = DEFAULT_IMAGE_TOKEN_SURCHARGE
    keep_last_n: int = DEFAULT_KEEP_LAST_N
    max_compare_targets: int = DEFAULT_MAX_COMPARE_TARGETS
    base_urls: dict[str, str] = field(default_factory=dict)
    model_limits: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> GatewayConfig:
        """Create a validated config from a raw mapping.

        Raises:
            ConfigError: On unknown keys or invalid values.
        """
        if not isinstance(raw, Mapping):
            raise ConfigError("Configuration must be a dictionary-like mapping")

        unknown = sorted(str(k) for k in raw if k not in _KNOWN_KEYS)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        store = _string(raw, "store", "json")
        if store not in STORE_KINDS:
            raise ConfigError(f"'store' must be one of: {', '.join(STORE_KINDS)}")

        threshold = _number(raw, "compression_threshold", DEFAULT_THRESHOLD_RATIO)
        if not 0 < threshold <= 1:
            raise ConfigError("'compression_threshold' must be in (0, 1]")

        base_urls_raw = raw.get("base_urls") or {}
        if not isinstance(base_urls_raw, Mapping) or not all(
            isinstance(v, str) and v for v in base_urls_raw.values()
        ):
            raise ConfigError("'base_urls' must map provider ids to URLs")

        limits_raw = raw.get("model_limits") or {}
        if not isinstance(limits_raw, Mapping) or not all(
            isinstance(v, int) and not isinstance(v, bool) and v > 0
            for v in limits_raw.values()
        ):
            raise ConfigError("'model_limits' must map model names to positive integers")

        return cls(
            encryption_key=_string(raw, "encryption_key", None),
            store=store,
            store_path=_string(raw, "store_path", DEFAULT_STORE_PATH) or DEFAULT_STORE_PATH,
            keyring_service=(
                _string(raw, "keyring_service", DEFAULT_KEYRING_SERVICE)
                or DEFAULT_KEYRING_SERVICE
            ),
            timeout=_number(raw, "timeout", DEFAULT_TIMEOUT_SEC),
            retry_attempts=_integer(raw, "retry_attempts", STANDARD_RETRY_ATTEMPTS, 1),
            keepalive_interval=_number(raw, "keepalive_interval", STREAM_KEEPALIVE_INTERVAL_SEC),
            persist_interval=_number(raw, "persist_interval", SINK_PERSIST_INTERVAL_SEC),
            compression_threshold=float(threshold),
            image_token_surcharge=_integer(
                raw, "image_token_surcharge", DEFAULT_IMAGE_TOKEN_SURCHARGE, 0
            ),
            keep_last_n=_integer(raw, "keep_last_n", DEFAULT_KEEP_LAST_N, 0),
            max_compare_targets=_integer(
                raw, "max_compare_targets", DEFAULT_MAX_COMPARE_TARGETS, 1
            ),
            base_urls={str(k).lower(): str(v) for k, v in base_urls_raw.items()},
            model_limits={str(k).lower(): int(v) for k, v in limits_raw.items()},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize without the encryption key."""
        return {
            "store": self.store,
            "store_path": self.store_path,
            "keyring_service": self.keyring_service,
            "timeout": self.timeout,
            "retry_attempts": self.retry_attempts,
            "keepalive_interval": self.keepalive_interval,
            "persist_interval": self.persist_interval,
            "compression_threshold": self.compression_threshold,
            "image_token_surcharge": self.image_token_surcharge,
            "keep_last_n": self.keep_last_n,
            "max_compare_targets": self.max_compare_targets,
            "base_urls": dict(self.base_urls),
            "model_limits": dict(self.model_limits),
        }

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        base: GatewayConfig | None = None,
    ) -> GatewayConfig:
        """Overlay ``LLMKV_*`` environment variables on ``base`` (or defaults)."""
        env = os.environ if environ is None else environ
        merged: dict[str, Any] = (base or cls()).to_dict()
        merged["encryption_key"] = base.encryption_key if base is not None else None

        for var_name, (key, kind) in _ENV_FIELDS.items():
            raw_value = env.get(var_name)
            if raw_value is None or not raw_value.strip():
                continue
            value = raw_value.strip()
            try:
                if kind == "int":
                    merged[key] = int(value)
                elif kind == "float":
                    merged[key] = float(value)
                else:
                    merged[key] = value
            except ValueError:
                raise ConfigError(f"Environment variable {var_name} must be a number") from None

        return cls.from_dict({k: v for k, v in merged.items() if v is not None})

    @property
    def resolved_store_path(self) -> Path:
        return Path(self.store_path).expanduser()


def load_config_file(path: str | Path) -> GatewayConfig:
    """Load a JSON configuration file.

    Raises:
        ConfigError: Missing file, invalid JSON, or invalid values.
    """
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw: Any = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e
    return GatewayConfig.from_dict(raw)
