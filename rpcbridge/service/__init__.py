#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Service registration, dispatch and invocation for rpcbridge.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from .registry import (
    InvocationStyle,
    MethodDescriptor,
    ServiceBinding,
    ServiceRegistry,
    describe_methods,
    rpc_method,
)
from .invocation import CompletionHandle, Invocation, InvocationAdapter
from .dispatcher import Dispatcher, RequestLifecycle, RequestState

__all__ = [
    "InvocationStyle",
    "MethodDescriptor",
    "ServiceBinding",
    "ServiceRegistry",
    "describe_methods",
    "rpc_method",
    "CompletionHandle",
    "Invocation",
    "InvocationAdapter",
    "Dispatcher",
    "RequestLifecycle",
    "RequestState",
]
