#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
HTTP client for rpcbridge endpoints.

Usage Example:
    >>> async with RpcHttpClient("http://127.0.0.1:8080/rpc", "json") as client:
    ...     greeting = await client.call("hello", "Bob")
    ...     await client.notify("audit", "hello", service_key="log")

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import itertools
from typing import Any, Optional, Union

import aiohttp

from .core.utils.exceptions import (
    DecodeError,
    RemoteApplicationError,
    RemoteInternalError,
    RpcTransportError,
)
from .core.utils.logger import ModernLogger
from .protocols.codecs import INT32_MAX
from .protocols.envelope import EnvelopeDecoder, EnvelopeEncoder
from .protocols.models import CallEnvelope, ResultKind, SerializationFormat


class RpcHttpClient(ModernLogger):
    """
    Call remote service methods over HTTP POST.

    ``call`` returns the remote value, raises ``RemoteApplicationError`` for a
    declared exception, ``RemoteInternalError`` for an undeclared failure and
    ``RpcTransportError`` when the HTTP exchange fails or is rejected.
    """

    def __init__(
        self,
        url: str,
        serialization_format: Union[SerializationFormat, str] = SerializationFormat.BINARY,
        *,
        service_key: str = "",
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(name="RpcHttpClient")
        self.url = url
        self.serialization_format = SerializationFormat.from_value(serialization_format)
        self.service_key = service_key
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout
        self._sequence = itertools.count(1)
        self._encoder = EnvelopeEncoder()
        self._decoder = EnvelopeDecoder()

    async def __aenter__(self) -> "RpcHttpClient":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def call(
        self, method_name: str, *arguments: Any, service_key: Optional[str] = None
    ) -> Any:
        """
        Invoke a method and return its result.

        Methods the server runs as oneway answer with an empty body; the call
        then returns ``None``.
        """
        call = self._make_call(method_name, arguments, service_key, oneway=False)
        payload = await self._post(call)
        if not payload:
            self.debug("%s #%d was handled as oneway", call.wire_name, call.sequence_id)
            return None
        result = self._decoder.decode_result(self.serialization_format, payload)

        if result.sequence_id != call.sequence_id:
            raise DecodeError(
                "Reply sequence id does not match the call",
                expected=call.sequence_id,
                received=result.sequence_id,
            )
        if result.kind is ResultKind.APPLICATION_EXCEPTION:
            raise RemoteApplicationError(result.exception_name or "", result.exception_fields)
        if result.kind is ResultKind.INTERNAL_ERROR:
            raise RemoteInternalError(result.message)
        return result.value

    async def notify(
        self, method_name: str, *arguments: Any, service_key: Optional[str] = None
    ) -> None:
        """
        Send a oneway call; the server answers with an empty body.
        """
        await self._post(self._make_call(method_name, arguments, service_key, oneway=True))

    def _make_call(
        self,
        method_name: str,
        arguments: Any,
        service_key: Optional[str],
        oneway: bool,
    ) -> CallEnvelope:
        sequence_id = next(self._sequence)
        if sequence_id > INT32_MAX:
            self._sequence = itertools.count(1)
            sequence_id = next(self._sequence)
        return CallEnvelope(
            method_name=method_name,
            sequence_id=sequence_id,
            arguments=tuple(arguments),
            service_key=self.service_key if service_key is None else service_key,
            oneway=oneway,
        )

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
            self._owns_session = True
        return self._session

    async def _post(self, call: CallEnvelope) -> bytes:
        data = self._encoder.encode_call(self.serialization_format, call)
        session = await self._ensure_session()
        try:
            async with session.post(
                self.url,
                data=data,
                headers={"Content-Type": self.serialization_format.media_type},
            ) as response:
                payload = await response.read()
                status = response.status
        except aiohttp.ClientError as exc:
            raise RpcTransportError(
                "HTTP request to {0} failed: {1}".format(self.url, exc),
                cause=exc,
            ) from exc

        if status != 200:
            raise RpcTransportError(
                payload.decode("utf-8", errors="replace") or "HTTP {0}".format(status),
                status=status,
            )
        self.debug("%s #%d -> %d bytes", call.wire_name, call.sequence_id, len(payload))
        return payload
