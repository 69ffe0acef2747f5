#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Exception hierarchy for rpcbridge.

Framework failures derive from ``RpcBridgeError`` and carry the HTTP status
used when they terminate a request. Failures declared by service
implementations derive from ``ApplicationError`` instead: they are part of the
RPC payload, not of the transport.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import traceback
from typing import Any, Dict, List, Optional


class RpcBridgeError(Exception):
    """
    Base class for all rpcbridge framework errors.
    """

    http_status = 500

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.cause = cause
        self.context: Dict[str, Any] = {
            key: value for key, value in context.items() if value is not None
        }
        super().__init__(message)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(
            "{0}={1!r}".format(key, value) for key, value in sorted(self.context.items())
        )
        return "{0} ({1})".format(self.message, details)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "status": self.http_status,
        }
        if self.context:
            payload["context"] = dict(self.context)
        if self.cause is not None:
            payload["cause"] = ExceptionFormatter.format_exception_summary(self.cause)
        return payload


class ConfigurationError(RpcBridgeError):
    """
    Invalid server or registry configuration, raised at startup.
    """


class NegotiationError(RpcBridgeError):
    """
    The content-type header is unrecognized or selects a disallowed format.
    """

    http_status = 415


class DecodeError(RpcBridgeError):
    """
    The request body is not a well-formed envelope for the negotiated format.
    """

    http_status = 400


class DispatchError(RpcBridgeError):
    """
    The call cannot be routed to a service method.
    """

    http_status = 404


class ServiceNotFoundError(DispatchError):
    """
    No service is registered under the multiplex key.
    """

    def __init__(self, service_key: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or "Unknown service: '{0}'".format(service_key),
            service_key=service_key,
        )
        self.service_key = service_key


class MethodNotFoundError(DispatchError):
    """
    The resolved service does not expose the method.
    """

    def __init__(
        self, service_key: str, method_name: str, message: Optional[str] = None
    ) -> None:
        super().__init__(
            message or "Unknown method: '{0}'".format(method_name),
            service_key=service_key,
            method_name=method_name,
        )
        self.service_key = service_key
        self.method_name = method_name


class RequestRejectedError(RpcBridgeError):
    """
    The HTTP request is rejected before negotiation (wrong verb, too large).
    """

    def __init__(self, message: str, status: int, **context: Any) -> None:
        super().__init__(message, **context)
        self.http_status = status


class EncodingError(RpcBridgeError):
    """
    An otherwise successful result cannot be serialized.
    """

    http_status = 500


class AdapterViolation(RpcBridgeError):
    """
    A completion handle was used after it was already completed.
    """


class ApplicationError(Exception):
    """
    Base class for exceptions declared by service methods.

    Instances travel inside a successful reply. Keyword arguments become the
    exception fields; ``message`` is always present.
    """

    def __init__(self, message: str = "", **fields: Any) -> None:
        super().__init__(message)
        self.message = message
        for name, value in fields.items():
            setattr(self, name, value)
        self._field_names = ["message", *fields.keys()]

    @property
    def exception_name(self) -> str:
        return self.__class__.__name__

    def to_fields(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self._field_names}


class RemoteApplicationError(Exception):
    """
    Client-side view of a declared exception raised by the remote service.
    """

    def __init__(self, exception_name: str, fields: Dict[str, Any]) -> None:
        self.exception_name = exception_name
        self.fields = dict(fields)
        super().__init__(
            "{0}: {1}".format(exception_name, self.fields.get("message", ""))
        )


class RemoteInternalError(Exception):
    """
    Client-side view of an undeclared failure inside the remote service.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RpcTransportError(RpcBridgeError):
    """
    The HTTP exchange failed or returned a non-success status.
    """

    def __init__(self, message: str, status: Optional[int] = None, **context: Any) -> None:
        super().__init__(message, status=status, **context)
        self.status = status


class ExceptionFormatter:
    """
    Render exceptions for logs and diagnostic payloads.
    """

    @staticmethod
    def format_exception_summary(exc: BaseException) -> str:
        return "{0}: {1}".format(exc.__class__.__name__, exc)

    @staticmethod
    def format_exception_chain(exc: BaseException) -> List[str]:
        chain: List[str] = []
        seen = set()
        current: Optional[BaseException] = exc
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            chain.append(ExceptionFormatter.format_exception_summary(current))
            current = current.__cause__ or current.__context__
        return chain

    @staticmethod
    def format_exception(exc: BaseException) -> str:
        return "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )


class ExceptionTranslator:
    """
    Wrap third-party exceptions into typed rpcbridge errors.
    """

    @staticmethod
    def as_decode_error(exc: BaseException, format_name: str) -> DecodeError:
        if isinstance(exc, DecodeError):
            return exc
        return DecodeError(
            "Malformed {0} envelope: {1}".format(format_name, exc),
            cause=exc,
            format=format_name,
        )

    @staticmethod
    def as_encoding_error(exc: BaseException, format_name: str) -> EncodingError:
        if isinstance(exc, EncodingError):
            return exc
        return EncodingError(
            "Cannot encode {0} envelope: {1}".format(format_name, exc),
            cause=exc,
            format=format_name,
        )


__all__ = [
    "RpcBridgeError",
    "ConfigurationError",
    "NegotiationError",
    "DecodeError",
    "DispatchError",
    "ServiceNotFoundError",
    "MethodNotFoundError",
    "RequestRejectedError",
    "EncodingError",
    "AdapterViolation",
    "ApplicationError",
    "RemoteApplicationError",
    "RemoteInternalError",
    "RpcTransportError",
    "ExceptionFormatter",
    "ExceptionTranslator",
]
