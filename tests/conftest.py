#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Pytest bootstrap: local package imports and process-wide config isolation.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import os
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def isolated_config(monkeypatch):
    """
    Drop RPCBRIDGE_* variables and the cached global config for one test.
    """
    from rpcbridge.core import config as config_module

    for name in list(os.environ):
        if name.startswith(config_module.ENV_PREFIX):
            monkeypatch.delenv(name)
    monkeypatch.setattr(config_module, "_GLOBAL_CONFIG", None)
    return config_module
