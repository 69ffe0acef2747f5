#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Tests for the transport-neutral HTTP RPC service.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from rpcbridge.core.config import BridgeConfig
from rpcbridge.core.utils.exceptions import ApplicationError, ConfigurationError, DecodeError
from rpcbridge.http import HttpRpcService, ResponseWriter
from rpcbridge.protocols import (
    CallEnvelope,
    EnvelopeDecoder,
    EnvelopeEncoder,
    ResultEnvelope,
    ResultKind,
    SerializationFormat,
)
from rpcbridge.service import RequestLifecycle, RequestState, rpc_method

BINARY = SerializationFormat.BINARY
COMPACT = SerializationFormat.COMPACT
JSON = SerializationFormat.JSON
TEXT = SerializationFormat.TEXT


class NameRejected(ApplicationError):
    pass


class HelloService:
    def __init__(self):
        self.calls = []
        self.threads = []

    @rpc_method(throws=(NameRejected,))
    def hello(self, name):
        self.calls.append(name)
        self.threads.append(threading.current_thread().name)
        if not name:
            raise NameRejected("name must not be empty", code=42)
        return "Hello, {0}!".format(name)

    @rpc_method
    def crash(self):
        raise RuntimeError("boom")

    @rpc_method
    def opaque(self):
        return object()

    @rpc_method(oneway=True)
    def audit(self, event):
        self.calls.append(("audit", event))

    @rpc_method(callback=True)
    def twice(self, handle):
        handle.complete("first")
        handle.complete("second")


class EchoService:
    def echo(self, value):
        return value


def _body(fmt, method, *arguments, sequence_id=1, oneway=False):
    return EnvelopeEncoder().encode_call(
        fmt, CallEnvelope(method, sequence_id, tuple(arguments), oneway=oneway)
    )


def _result(fmt, response):
    return EnvelopeDecoder().decode_result(fmt, response.body)


def _post(service, body, content_type=None, lifecycle=None):
    headers = {} if content_type is None else {"Content-Type": content_type}
    return asyncio.run(service.handle("POST", headers, body, lifecycle))


def test_default_format_serves_request_without_content_type():
    service = HttpRpcService.of(HelloService(), BINARY)

    response = _post(service, _body(BINARY, "hello", "Bob"))

    assert response.status == 200
    assert response.content_type == "application/x-rpc; protocol=BINARY"
    result = _result(BINARY, response)
    assert result.value == "Hello, Bob!"
    assert result.sequence_id == 1


def test_protocol_parameter_selects_format():
    service = HttpRpcService.of(HelloService(), BINARY)

    response = _post(service, _body(JSON, "hello", "Ann"), "application/x-rpc; protocol=JSON")

    assert response.status == 200
    assert response.content_type == "application/x-rpc; protocol=JSON"
    assert _result(JSON, response).value == "Hello, Ann!"


def test_vendor_media_type_selects_format():
    service = HttpRpcService.of(HelloService(), BINARY)

    response = _post(service, _body(COMPACT, "hello", "Cy"), "application/vnd.rpc.compact")

    assert response.content_type == "application/x-rpc; protocol=COMPACT"
    assert _result(COMPACT, response).value == "Hello, Cy!"


def test_disallowed_format_is_rejected_before_decoding():
    implementation = HelloService()
    service = HttpRpcService.of_formats(implementation, BINARY, COMPACT)
    lifecycle = RequestLifecycle()

    response = _post(
        service, _body(TEXT, "hello", "Eve"), "application/x-rpc; protocol=TEXT", lifecycle
    )

    assert response.status == 415
    assert response.content_type == "text/plain; charset=utf-8"
    assert response.body.startswith(b"Unsupported Media Type: ")
    assert implementation.calls == []
    assert lifecycle.state is RequestState.FAILED
    assert lifecycle.failure_kind == "NegotiationError"


def test_non_post_is_rejected_with_allow_header():
    service = HttpRpcService.of(HelloService())

    response = asyncio.run(service.handle("GET", {}, b""))

    assert response.status == 405
    assert response.headers == {"Allow": "POST"}


def test_oversized_body_is_rejected():
    service = HttpRpcService({"": HelloService()}, max_request_length=16)

    response = _post(service, _body(JSON, "hello", "x" * 64), "application/vnd.rpc.json")

    assert response.status == 413


def test_malformed_body_is_bad_request():
    service = HttpRpcService.of(HelloService(), JSON)
    lifecycle = RequestLifecycle()

    response = _post(service, b"[1, \"hello\"", lifecycle=lifecycle)

    assert response.status == 400
    assert lifecycle.history == [
        RequestState.RECEIVED,
        RequestState.NEGOTIATED,
        RequestState.FAILED,
    ]


def test_unknown_method_is_not_found():
    service = HttpRpcService.of(HelloService())

    response = _post(service, _body(BINARY, "goodbye"))

    assert response.status == 404
    assert b"goodbye" in response.body


def test_multiplexed_routing_and_unknown_key():
    service = (
        HttpRpcService.builder()
        .add_service(HelloService())
        .add_service("echo", EchoService())
        .default_format("json")
        .build()
    )

    keyed = _post(service, EnvelopeEncoder().encode_call(
        JSON, CallEnvelope("echo", 7, ([1, 2],), service_key="echo")
    ))
    default = _post(service, _body(JSON, "hello", "Dee"))
    unknown = _post(service, EnvelopeEncoder().encode_call(
        JSON, CallEnvelope("echo", 8, (), service_key="missing")
    ))

    assert _result(JSON, keyed).value == [1, 2]
    assert _result(JSON, keyed).method_name == "echo:echo"
    assert _result(JSON, default).value == "Hello, Dee!"
    assert unknown.status == 404


def test_declared_exception_is_a_successful_response():
    service = HttpRpcService.of(HelloService(), TEXT)

    response = _post(service, _body(TEXT, "hello", ""))

    assert response.status == 200
    result = _result(TEXT, response)
    assert result.kind is ResultKind.APPLICATION_EXCEPTION
    assert result.exception_name == "NameRejected"
    assert result.exception_fields == {"message": "name must not be empty", "code": 42}


def test_undeclared_exception_is_an_internal_error_response():
    service = HttpRpcService.of(HelloService())

    response = _post(service, _body(BINARY, "crash"))

    assert response.status == 200
    result = _result(BINARY, response)
    assert result.kind is ResultKind.INTERNAL_ERROR
    assert "RuntimeError: boom" in result.message


def test_oneway_call_gets_empty_body():
    implementation = HelloService()
    service = HttpRpcService.of(implementation)

    async def run_case():
        response = await service.handle(
            "POST", {}, _body(BINARY, "audit", "login", oneway=True)
        )
        await service.close()
        return response

    response = asyncio.run(run_case())

    assert response.status == 200
    assert response.body == b""
    assert implementation.calls == [("audit", "login")]


def test_unencodable_result_is_server_error():
    service = HttpRpcService.of(HelloService(), JSON)

    response = _post(service, _body(JSON, "opaque"))

    assert response.status == 500
    assert response.content_type == "text/plain; charset=utf-8"


def test_double_completion_keeps_first_response():
    service = HttpRpcService.of(HelloService())
    lifecycle = RequestLifecycle()

    response = _post(service, _body(BINARY, "twice"), lifecycle=lifecycle)

    assert _result(BINARY, response).value == "first"
    assert lifecycle.state is RequestState.COMPLETED


def test_builder_applies_every_setting():
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="builder-test") as executor:
        implementation = HelloService()
        service = (
            HttpRpcService.builder()
            .add_service(implementation)
            .default_format(COMPACT)
            .allowed_formats(COMPACT, JSON)
            .max_request_length(1024)
            .blocking_executor(executor)
            .build()
        )

        response = _post(service, _body(COMPACT, "hello", "Kit"))

    assert service.max_request_length == 1024
    assert service.negotiator.allowed_formats == frozenset({COMPACT, JSON})
    assert _result(COMPACT, response).value == "Hello, Kit!"
    assert implementation.threads[0].startswith("builder-test")


def test_header_lookup_is_case_insensitive():
    service = HttpRpcService.of(HelloService())

    response = asyncio.run(
        service.handle(
            "post",
            {"content-type": "application/x-rpc; protocol=JSON"},
            _body(JSON, "hello", "Lee"),
        )
    )

    assert _result(JSON, response).value == "Hello, Lee!"


def test_from_config_runs_sync_methods_on_worker_threads():
    implementation = HelloService()
    config = BridgeConfig(default_format="json", blocking_workers=2)
    service = HttpRpcService.from_config(config, {"": implementation})

    async def run_case():
        response = await service.handle("POST", {}, _body(JSON, "hello", "Max"))
        await service.close()
        return response

    response = asyncio.run(run_case())

    assert _result(JSON, response).value == "Hello, Max!"
    assert implementation.threads[0].startswith("rpcbridge-blocking")


def test_invalid_default_format_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        HttpRpcService({"": HelloService()}, default_format=TEXT, allowed_formats=[BINARY])


def test_response_writer_maps_errors_to_plain_text():
    writer = ResponseWriter()

    response = writer.write_error(DecodeError("Malformed JSON envelope"))

    assert response.status == 400
    assert response.body == b"Bad Request: Malformed JSON envelope"


def test_response_writer_encodes_result_in_negotiated_format():
    writer = ResponseWriter()
    result = ResultEnvelope.success(CallEnvelope("hello", 3), "Hello, Bob!")

    response = writer.write_result(COMPACT, result)

    assert response.status == 200
    assert response.content_type == COMPACT.media_type
    assert EnvelopeDecoder().decode_result(COMPACT, response.body) == result
