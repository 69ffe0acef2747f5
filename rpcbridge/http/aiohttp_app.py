#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
aiohttp server binding for ``HttpRpcService``.

The binding copies the request verb, headers and body into the service and
the resulting ``HttpResponse`` back out. ``run_server`` enables aiohttp's
handler cancellation so a dropped client connection cancels the request task,
which the invocation adapter turns into a cancellation signal for the
service method.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from typing import Any, Mapping, Optional

from aiohttp import web

from ..core.config import BridgeConfig, get_config
from ..core.utils.logger import ModernLogger, configure_logging
from .service import HttpRpcService

SERVICE_KEY = web.AppKey("rpcbridge_service", HttpRpcService)


class AiohttpRpcHandler(ModernLogger):
    """
    aiohttp request handler delegating to ``HttpRpcService``.
    """

    def __init__(self, service: HttpRpcService) -> None:
        super().__init__(name="AiohttpRpcHandler")
        self._service = service

    async def __call__(self, request: web.Request) -> web.Response:
        body = await request.read()
        result = await self._service.handle(request.method, request.headers, body)
        self.debug("%s %s answered with %d", request.method, request.path, result.status)

        headers = dict(result.headers)
        headers["Content-Type"] = result.content_type
        return web.Response(status=result.status, body=result.body, headers=headers)


async def _close_service(app: web.Application) -> None:
    await app[SERVICE_KEY].close()


def create_app(service: HttpRpcService, path: str = "/rpc") -> web.Application:
    """
    Build an aiohttp application serving ``service`` on ``path``.

    Every verb is routed to the handler so that non-POST requests get the
    service's own 405 response.
    """
    app = web.Application(client_max_size=service.max_request_length)
    app[SERVICE_KEY] = service
    app.router.add_route("*", path, AiohttpRpcHandler(service))
    app.on_cleanup.append(_close_service)
    return app


def run_server(
    service: HttpRpcService,
    config: Optional[BridgeConfig] = None,
    **run_kwargs: Any,
) -> None:
    """
    Run ``service`` until interrupted (blocks).
    """
    config = config or get_config()
    configure_logging(config.log_level)
    web.run_app(
        create_app(service, config.path),
        host=config.host,
        port=config.port,
        handler_cancellation=True,
        **run_kwargs,
    )


def serve(services: Mapping[str, Any], config: Optional[BridgeConfig] = None, **run_kwargs: Any) -> None:
    """
    Build an ``HttpRpcService`` from configuration and run it (blocks).
    """
    config = config or get_config()
    configure_logging(config.log_level)
    run_server(HttpRpcService.from_config(config, services), config, **run_kwargs)
