#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Concurrency primitives for rpcbridge.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import asyncio
from typing import Any, Callable


def create_loop_future() -> "asyncio.Future[Any]":
    """
    Create a future bound to the currently running event loop.
    """
    return asyncio.get_running_loop().create_future()


def call_in_loop(
    loop: asyncio.AbstractEventLoop, callback: Callable[..., Any], *args: Any
) -> bool:
    """
    Run ``callback`` on ``loop`` from any thread.

    Inside the loop's own thread the callback runs immediately; elsewhere it is
    scheduled with ``call_soon_threadsafe``. Returns False when the loop is
    already closed and the callback could not be delivered.
    """
    if loop.is_closed():
        return False

    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None

    if running is loop:
        callback(*args)
        return True

    try:
        loop.call_soon_threadsafe(callback, *args)
    except RuntimeError:
        # loop closed between the check and the call
        return False
    return True

