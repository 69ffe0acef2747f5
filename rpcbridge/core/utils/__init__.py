#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Utility exports for rpcbridge core.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from .logger import ModernLogger, configure_logging
from .exceptions import *  # noqa: F401,F403 - re-export the error taxonomy
from .exceptions import ExceptionFormatter, ExceptionTranslator
from .concurrency import call_in_loop, create_loop_future

# Common formatter shortcuts
format_exception = ExceptionFormatter.format_exception
format_exception_chain = ExceptionFormatter.format_exception_chain
format_exception_summary = ExceptionFormatter.format_exception_summary

__all__ = [
    "ModernLogger",
    "configure_logging",
    "ExceptionFormatter",
    "ExceptionTranslator",
    "call_in_loop",
    "create_loop_future",
    "format_exception",
    "format_exception_chain",
    "format_exception_summary",
]
