#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Logging helpers for rpcbridge.

Components inherit ``ModernLogger`` and log through ``self.debug`` /
``self.info`` / ``self.warning`` / ``self.error``. Every logger lives under the
``rpcbridge`` namespace so applications can tune the whole package with a
single ``logging.getLogger("rpcbridge")`` call.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import logging
import threading
from typing import Any, Optional, Union

ROOT_LOGGER_NAME = "rpcbridge"
DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_CONFIGURE_LOCK = threading.Lock()
_HANDLER_INSTALLED = False


def _resolve_level(level: Union[int, str, None]) -> Optional[int]:
    if level is None:
        return None
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(
    level: Union[int, str] = "info", fmt: str = DEFAULT_FORMAT
) -> logging.Logger:
    """
    Install a stream handler on the package root logger (once per process).
    """
    global _HANDLER_INSTALLED

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(_resolve_level(level))

    if _HANDLER_INSTALLED:
        return root

    with _CONFIGURE_LOCK:
        if not _HANDLER_INSTALLED:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(fmt))
            root.addHandler(handler)
            _HANDLER_INSTALLED = True

    return root


class ModernLogger:
    """
    Logging mixin: gives a component a namespaced logger and shortcut methods.
    """

    def __init__(
        self, name: Optional[str] = None, level: Union[int, str, None] = None
    ) -> None:
        logger_name = name or self.__class__.__name__
        self._logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{logger_name}")
        resolved = _resolve_level(level)
        if resolved is not None:
            self._logger.setLevel(resolved)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def debug(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)
