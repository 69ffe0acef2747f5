#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
HTTP-facing RPC service for rpcbridge.

``HttpRpcService`` is transport-neutral: it takes the HTTP verb, headers and
body of a request and returns an ``HttpResponse``. Server bindings (see
``rpcbridge.http.aiohttp_app``) only copy bytes in and out.

Request pipeline:
    verb/size checks -> FormatNegotiator -> EnvelopeDecoder -> Dispatcher
    -> InvocationAdapter -> EnvelopeEncoder -> ResponseWriter

Status codes:
    200  dispatched call, including declared exceptions and internal errors
    400  malformed envelope
    404  unknown service key or method
    405  verb other than POST
    413  body larger than ``max_request_length``
    415  content-type not recognized or not allowed
    500  result could not be encoded

Usage Example:
    >>> service = HttpRpcService.of(HelloService(), SerializationFormat.JSON)
    >>> response = await service.handle("POST", headers, body)
    >>>
    >>> service = HttpRpcService.builder() \
    ...     .add_service("hello", HelloService()) \
    ...     .add_service("echo", EchoService()) \
    ...     .default_format("binary") \
    ...     .allowed_formats("binary", "compact") \
    ...     .build()

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from ..core.config import DEFAULT_MAX_REQUEST_LENGTH, BridgeConfig
from ..core.utils.exceptions import EncodingError, RequestRejectedError, RpcBridgeError
from ..core.utils.logger import ModernLogger
from ..protocols.envelope import EnvelopeDecoder, EnvelopeEncoder
from ..protocols.models import ResultEnvelope, SerializationFormat
from ..protocols.negotiation import FormatNegotiator
from ..service.dispatcher import Dispatcher, RequestLifecycle, RequestState
from ..service.invocation import InvocationAdapter
from ..service.registry import ServiceRegistry

ERROR_CONTENT_TYPE = "text/plain; charset=utf-8"

FormatLike = Union[SerializationFormat, str]


@dataclass(frozen=True)
class HttpResponse:
    status: int
    content_type: str
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


class ResponseWriter:
    """
    Turn terminal outcomes into HTTP responses.
    """

    def __init__(self, encoder: Optional[EnvelopeEncoder] = None) -> None:
        self._encoder = encoder or EnvelopeEncoder()

    def write_result(
        self,
        serialization_format: SerializationFormat,
        result: Optional[ResultEnvelope],
    ) -> HttpResponse:
        """
        200 with the encoded envelope; 200 with an empty body for oneway calls.
        """
        if result is None:
            return HttpResponse(status=200, content_type=serialization_format.media_type)
        try:
            body = self._encoder.encode_result(serialization_format, result)
        except EncodingError as exc:
            return self.write_error(exc)
        return HttpResponse(
            status=200,
            content_type=serialization_format.media_type,
            body=body,
        )

    def write_error(self, error: RpcBridgeError) -> HttpResponse:
        """
        Plain-text error response; no envelope is encoded.
        """
        status = HTTPStatus(error.http_status)
        headers: Dict[str, str] = {}
        if status is HTTPStatus.METHOD_NOT_ALLOWED:
            headers["Allow"] = "POST"
        return HttpResponse(
            status=status.value,
            content_type=ERROR_CONTENT_TYPE,
            body="{0}: {1}".format(status.phrase, error.message).encode("utf-8"),
            headers=headers,
        )


class HttpRpcService(ModernLogger):
    """
    Serve RPC calls carried in HTTP POST bodies.
    """

    def __init__(
        self,
        services: Union[ServiceRegistry, Mapping[str, Any]],
        default_format: FormatLike = SerializationFormat.BINARY,
        allowed_formats: Optional[Iterable[FormatLike]] = None,
        max_request_length: int = DEFAULT_MAX_REQUEST_LENGTH,
        blocking_executor: Optional[Executor] = None,
    ) -> None:
        super().__init__(name="HttpRpcService")

        registry = services if isinstance(services, ServiceRegistry) else ServiceRegistry(services)
        registry.freeze()

        self.max_request_length = max_request_length
        self._negotiator = FormatNegotiator(default_format, allowed_formats)
        self._decoder = EnvelopeDecoder(multiplexed=registry.multiplexed)
        self._dispatcher = Dispatcher(registry, InvocationAdapter(blocking_executor))
        self._writer = ResponseWriter()
        self._owned_executor: Optional[Executor] = None

        self.info(
            "Serving %d service(s) %s, default format %s, allowed %s",
            len(registry),
            registry.keys(),
            self._negotiator.default_format.value,
            sorted(fmt.value for fmt in self._negotiator.allowed_formats),
        )

    @classmethod
    def of(
        cls, implementation: Any, default_format: FormatLike = SerializationFormat.BINARY
    ) -> "HttpRpcService":
        """
        Single default service accepting every format.
        """
        return cls({"": implementation}, default_format=default_format)

    @classmethod
    def of_formats(
        cls,
        implementation: Any,
        default_format: FormatLike,
        *other_formats: FormatLike,
    ) -> "HttpRpcService":
        """
        Single default service accepting only the listed formats.
        """
        return cls(
            {"": implementation},
            default_format=default_format,
            allowed_formats=(default_format, *other_formats),
        )

    @classmethod
    def builder(cls) -> "HttpRpcServiceBuilder":
        return HttpRpcServiceBuilder()

    @classmethod
    def from_config(
        cls, config: BridgeConfig, services: Mapping[str, Any]
    ) -> "HttpRpcService":
        """
        Build a service from ``BridgeConfig``; owns its blocking executor.
        """
        executor: Optional[Executor] = None
        if config.blocking_workers > 0:
            executor = ThreadPoolExecutor(
                max_workers=config.blocking_workers,
                thread_name_prefix="rpcbridge-blocking",
            )
        service = cls(
            services,
            default_format=config.default_format,
            allowed_formats=config.allowed_formats,
            max_request_length=config.max_request_length,
            blocking_executor=executor,
        )
        service._owned_executor = executor
        return service

    @property
    def negotiator(self) -> FormatNegotiator:
        return self._negotiator

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    async def handle(
        self,
        method: str,
        headers: Mapping[str, str],
        body: bytes,
        lifecycle: Optional[RequestLifecycle] = None,
    ) -> HttpResponse:
        """
        Process one HTTP request end to end.
        """
        lifecycle = lifecycle or RequestLifecycle()
        try:
            self._check_request(method, body)
            serialization_format = self._negotiator.negotiate(_header(headers, "content-type"))
            lifecycle.advance(RequestState.NEGOTIATED)

            call = self._decoder.decode_call(serialization_format, body)
            lifecycle.advance(RequestState.DECODED)

            result = await self._dispatcher.dispatch(serialization_format, call, lifecycle)
        except RpcBridgeError as exc:
            if not lifecycle.terminal:
                lifecycle.fail(exc.__class__.__name__)
            self.debug("Rejected request (%d): %s", exc.http_status, exc)
            return self._writer.write_error(exc)

        response = self._writer.write_result(serialization_format, result)
        if response.status != 200:
            self.error("Failed to encode result of %s: %s", call.wire_name, response.body)
        return response

    async def close(self) -> None:
        """
        Wait for oneway calls and release the owned executor.
        """
        await self._dispatcher.drain()
        if self._owned_executor is not None:
            self._owned_executor.shutdown(wait=False)
            self._owned_executor = None

    def _check_request(self, method: str, body: bytes) -> None:
        if method.upper() != "POST":
            raise RequestRejectedError(
                "Only POST is supported", status=405, method=method
            )
        if len(body) > self.max_request_length:
            raise RequestRejectedError(
                "Request body exceeds {0} bytes".format(self.max_request_length),
                status=413,
            )


class HttpRpcServiceBuilder:
    """
    Fluent construction of ``HttpRpcService``.
    """

    def __init__(self) -> None:
        self._registry = ServiceRegistry()
        self._default_format: FormatLike = SerializationFormat.BINARY
        self._allowed_formats: Optional[Iterable[FormatLike]] = None
        self._max_request_length = DEFAULT_MAX_REQUEST_LENGTH
        self._blocking_executor: Optional[Executor] = None

    def add_service(self, key: Any, implementation: Any = None) -> "HttpRpcServiceBuilder":
        """
        ``add_service(impl)`` registers the default service;
        ``add_service(key, impl)`` a multiplexed one.
        """
        if implementation is None:
            key, implementation = "", key
        self._registry.register(key, implementation)
        return self

    def default_format(self, serialization_format: FormatLike) -> "HttpRpcServiceBuilder":
        self._default_format = serialization_format
        return self

    def allowed_formats(self, *formats: FormatLike) -> "HttpRpcServiceBuilder":
        self._allowed_formats = formats
        return self

    def max_request_length(self, length: int) -> "HttpRpcServiceBuilder":
        self._max_request_length = length
        return self

    def blocking_executor(self, executor: Executor) -> "HttpRpcServiceBuilder":
        self._blocking_executor = executor
        return self

    def build(self) -> HttpRpcService:
        return HttpRpcService(
            self._registry,
            default_format=self._default_format,
            allowed_formats=self._allowed_formats,
            max_request_length=self._max_request_length,
            blocking_executor=self._blocking_executor,
        )
