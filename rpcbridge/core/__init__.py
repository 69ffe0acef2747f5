#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
rpcbridge core module exports (lazy-loaded).

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from importlib import import_module
from typing import Any, Dict, Tuple

_EXPORT_MAP: Dict[str, Tuple[str, str]] = {
    "BridgeConfig": ("rpcbridge.core.config", "BridgeConfig"),
    "get_config": ("rpcbridge.core.config", "get_config"),
    "create_config": ("rpcbridge.core.config", "create_config"),
    "ModernLogger": ("rpcbridge.core.utils", "ModernLogger"),
    "configure_logging": ("rpcbridge.core.utils", "configure_logging"),
}

__all__ = sorted(_EXPORT_MAP.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORT_MAP:
        raise AttributeError("module 'rpcbridge.core' has no attribute '{0}'".format(name))

    module_name, attr_name = _EXPORT_MAP[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
