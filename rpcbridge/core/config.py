#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Server configuration for rpcbridge.

Configuration is a plain dataclass validated on construction. It can be
created directly, or loaded from ``RPCBRIDGE_*`` environment variables:

    RPCBRIDGE_DEFAULT_FORMAT=json
    RPCBRIDGE_ALLOWED_FORMATS=binary,compact,json
    RPCBRIDGE_PATH=/rpc
    RPCBRIDGE_HOST=0.0.0.0
    RPCBRIDGE_PORT=8080
    RPCBRIDGE_MAX_REQUEST_LENGTH=10485760
    RPCBRIDGE_BLOCKING_WORKERS=8
    RPCBRIDGE_LOG_LEVEL=debug

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import os
import threading
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Mapping, Optional, Tuple

from ..protocols.models import SerializationFormat
from .utils.exceptions import ConfigurationError

ENV_PREFIX = "RPCBRIDGE_"
DEFAULT_MAX_REQUEST_LENGTH = 10 * 1024 * 1024

_CONFIG_LOCK = threading.Lock()
_GLOBAL_CONFIG: Optional["BridgeConfig"] = None


def _parse_formats(value: Any) -> Tuple[SerializationFormat, ...]:
    if isinstance(value, str):
        items = [item for item in value.replace(" ", "").split(",") if item]
    else:
        items = list(value)
    try:
        parsed = [SerializationFormat.from_value(item) for item in items]
    except ValueError as exc:
        raise ConfigurationError(
            "Unknown serialization format in {0!r}".format(value), cause=exc
        ) from exc
    # keep declaration order, drop duplicates
    return tuple(fmt for fmt in SerializationFormat if fmt in parsed)


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError("{0} must be an integer".format(name))
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            "{0} must be an integer, got {1!r}".format(name, value), cause=exc
        ) from exc


@dataclass
class BridgeConfig:
    """
    Settings consumed by ``HttpRpcService.from_config`` and ``run_server``.
    """

    default_format: SerializationFormat = SerializationFormat.BINARY
    allowed_formats: Tuple[SerializationFormat, ...] = field(
        default_factory=lambda: tuple(SerializationFormat)
    )
    path: str = "/rpc"
    host: str = "127.0.0.1"
    port: int = 8080
    max_request_length: int = DEFAULT_MAX_REQUEST_LENGTH
    blocking_workers: int = 0
    log_level: str = "info"

    def __post_init__(self) -> None:
        try:
            self.default_format = SerializationFormat.from_value(self.default_format)
        except ValueError as exc:
            raise ConfigurationError(
                "Unknown default format: {0}".format(self.default_format), cause=exc
            ) from exc
        self.allowed_formats = _parse_formats(self.allowed_formats)

        if not self.allowed_formats:
            raise ConfigurationError("allowed_formats must not be empty")
        if self.default_format not in self.allowed_formats:
            raise ConfigurationError(
                "default_format must be one of allowed_formats",
                default_format=self.default_format.value,
            )
        self.port = _as_int("port", self.port)
        self.max_request_length = _as_int("max_request_length", self.max_request_length)
        self.blocking_workers = _as_int("blocking_workers", self.blocking_workers)

        if not self.path.startswith("/"):
            raise ConfigurationError("path must start with '/'", path=self.path)
        if not 1 <= self.port <= 65535:
            raise ConfigurationError(
                f"Port must be between 1 and 65535, got {self.port}"
            )
        if self.max_request_length <= 0:
            raise ConfigurationError("max_request_length must be positive")
        if self.blocking_workers < 0:
            raise ConfigurationError("blocking_workers must not be negative")

    @classmethod
    def from_env(
        cls,
        prefix: str = ENV_PREFIX,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "BridgeConfig":
        """
        Load settings from environment variables; keyword overrides win.
        """
        source = os.environ if environ is None else environ
        known = {item.name for item in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in source.items():
            if not key.startswith(prefix):
                continue
            name = key[len(prefix):].lower()
            if name in known:
                values[name] = value.strip()
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["default_format"] = self.default_format.value
        data["allowed_formats"] = [fmt.value for fmt in self.allowed_formats]
        return data


def get_config() -> BridgeConfig:
    """
    Return the process-wide configuration, loading it from the environment once.
    """
    global _GLOBAL_CONFIG

    if _GLOBAL_CONFIG is None:
        with _CONFIG_LOCK:
            if _GLOBAL_CONFIG is None:
                _GLOBAL_CONFIG = BridgeConfig.from_env()
    return _GLOBAL_CONFIG


def create_config(**overrides: Any) -> BridgeConfig:
    """
    Build a configuration from the environment plus overrides and make it the
    process-wide one.
    """
    global _GLOBAL_CONFIG

    config = BridgeConfig.from_env(**overrides)
    with _CONFIG_LOCK:
        _GLOBAL_CONFIG = config
    return config
