#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
rpcbridge public API with lazy imports.

This avoids importing the codec and HTTP libraries unless the corresponding
API objects are actually requested.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from importlib import import_module
from typing import Any, Dict, Tuple

from ._version import __version__

__author__ = "Silan Hu"
__email__ = "silan.hu@u.nus.edu"

_EXPORT_MAP: Dict[str, Tuple[str, str]] = {
    "HttpRpcService": ("rpcbridge.http", "HttpRpcService"),
    "HttpResponse": ("rpcbridge.http", "HttpResponse"),
    "create_app": ("rpcbridge.http", "create_app"),
    "run_server": ("rpcbridge.http", "run_server"),
    "serve": ("rpcbridge.http", "serve"),
    "RpcHttpClient": ("rpcbridge.client", "RpcHttpClient"),
    "SerializationFormat": ("rpcbridge.protocols", "SerializationFormat"),
    "CallEnvelope": ("rpcbridge.protocols", "CallEnvelope"),
    "ResultEnvelope": ("rpcbridge.protocols", "ResultEnvelope"),
    "FormatNegotiator": ("rpcbridge.protocols", "FormatNegotiator"),
    "ServiceRegistry": ("rpcbridge.service", "ServiceRegistry"),
    "CompletionHandle": ("rpcbridge.service", "CompletionHandle"),
    "rpc_method": ("rpcbridge.service", "rpc_method"),
    "ApplicationError": ("rpcbridge.core.utils.exceptions", "ApplicationError"),
    "BridgeConfig": ("rpcbridge.core", "BridgeConfig"),
    "get_config": ("rpcbridge.core", "get_config"),
    "create_config": ("rpcbridge.core", "create_config"),
}

__all__ = ["__version__", *sorted(_EXPORT_MAP.keys())]


def __getattr__(name: str) -> Any:
    """
    Resolve public API symbols lazily.
    """
    if name not in _EXPORT_MAP:
        raise AttributeError("module 'rpcbridge' has no attribute '{0}'".format(name))

    module_name, attr_name = _EXPORT_MAP[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
