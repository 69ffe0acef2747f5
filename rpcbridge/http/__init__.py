#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
HTTP surface of rpcbridge.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from .service import HttpResponse, HttpRpcService, HttpRpcServiceBuilder, ResponseWriter
from .aiohttp_app import AiohttpRpcHandler, create_app, run_server, serve

__all__ = [
    "HttpResponse",
    "HttpRpcService",
    "HttpRpcServiceBuilder",
    "ResponseWriter",
    "AiohttpRpcHandler",
    "create_app",
    "run_server",
    "serve",
]
