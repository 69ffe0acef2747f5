#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Tests for server configuration loading and validation.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import pytest

from rpcbridge.core.config import BridgeConfig
from rpcbridge.core.utils.exceptions import ConfigurationError
from rpcbridge.protocols import SerializationFormat


def test_defaults_allow_every_format():
    config = BridgeConfig()

    assert config.default_format is SerializationFormat.BINARY
    assert config.allowed_formats == tuple(SerializationFormat)
    assert config.path == "/rpc"
    assert config.blocking_workers == 0


def test_from_env_reads_prefixed_variables():
    config = BridgeConfig.from_env(
        environ={
            "RPCBRIDGE_DEFAULT_FORMAT": "json",
            "RPCBRIDGE_ALLOWED_FORMATS": "text, json,json",
            "RPCBRIDGE_PORT": "9090",
            "RPCBRIDGE_MAX_REQUEST_LENGTH": "2048",
            "RPCBRIDGE_LOG_LEVEL": "debug",
            "RPCBRIDGE_UNKNOWN": "ignored",
            "OTHER_PORT": "1",
        }
    )

    assert config.default_format is SerializationFormat.JSON
    assert config.allowed_formats == (SerializationFormat.JSON, SerializationFormat.TEXT)
    assert config.port == 9090
    assert config.max_request_length == 2048
    assert config.log_level == "debug"


def test_overrides_win_over_environment():
    config = BridgeConfig.from_env(
        environ={"RPCBRIDGE_PORT": "9090"},
        port=7070,
        host="0.0.0.0",
    )

    assert config.port == 7070
    assert config.host == "0.0.0.0"


@pytest.mark.parametrize(
    "overrides",
    [
        {"default_format": "xml"},
        {"allowed_formats": "binary,xml"},
        {"allowed_formats": ""},
        {"default_format": "text", "allowed_formats": "binary"},
        {"port": "eighty"},
        {"port": 70000},
        {"max_request_length": 0},
        {"blocking_workers": -1},
        {"path": "rpc"},
    ],
)
def test_invalid_settings_raise_configuration_error(overrides):
    with pytest.raises(ConfigurationError):
        BridgeConfig(**overrides)


def test_to_dict_uses_format_names():
    data = BridgeConfig(default_format="compact").to_dict()

    assert data["default_format"] == "COMPACT"
    assert data["allowed_formats"] == ["BINARY", "COMPACT", "JSON", "TEXT"]


def test_global_config_is_loaded_once(isolated_config, monkeypatch):
    monkeypatch.setenv("RPCBRIDGE_PORT", "8181")

    first = isolated_config.get_config()
    monkeypatch.setenv("RPCBRIDGE_PORT", "8282")

    assert first.port == 8181
    assert isolated_config.get_config() is first


def test_create_config_replaces_global_config(isolated_config):
    created = isolated_config.create_config(default_format="text")

    assert created.default_format is SerializationFormat.TEXT
    assert isolated_config.get_config() is created
