#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Protocol domain models for rpcbridge.

This module defines the wire-format-agnostic data structures exchanged between
the negotiation, envelope, dispatch and response layers.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple, Union

GENERIC_MEDIA_TYPE = "application/x-rpc"
VENDOR_MEDIA_TYPE_PREFIX = "application/vnd.rpc."
MULTIPLEX_SEPARATOR = ":"


class SerializationFormat(str, Enum):
    """
    Supported wire encodings.
    """

    BINARY = "BINARY"
    COMPACT = "COMPACT"
    JSON = "JSON"
    TEXT = "TEXT"

    @classmethod
    def from_value(cls, value: Union["SerializationFormat", str]) -> "SerializationFormat":
        """
        Parse format from enum/string (case-insensitive).
        """
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())

    @property
    def media_type(self) -> str:
        """
        Canonical content type written on responses.
        """
        return "{0}; protocol={1}".format(GENERIC_MEDIA_TYPE, self.value)

    @property
    def vendor_media_type(self) -> str:
        return VENDOR_MEDIA_TYPE_PREFIX + self.value.lower()


class MessageType(IntEnum):
    """
    Kind of a wire message.
    """

    CALL = 1
    REPLY = 2
    EXCEPTION = 3
    ONEWAY = 4


@dataclass(frozen=True)
class WireMessage:
    """
    Structure every codec reads and writes: a named, typed, sequenced body.
    """

    name: str
    message_type: MessageType
    sequence_id: int
    body: Any = None


@dataclass(frozen=True)
class CallEnvelope:
    """
    Decoded RPC call.
    """

    method_name: str
    sequence_id: int = 0
    arguments: Tuple[Any, ...] = field(default_factory=tuple)
    service_key: str = ""
    oneway: bool = False

    @property
    def wire_name(self) -> str:
        """
        Method name as it appears on the wire (``key:method`` when keyed).
        """
        if self.service_key:
            return self.service_key + MULTIPLEX_SEPARATOR + self.method_name
        return self.method_name


class ResultKind(str, Enum):
    SUCCESS = "success"
    APPLICATION_EXCEPTION = "application_exception"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class ResultEnvelope:
    """
    Outcome of one call: a value, a declared exception, or an internal error.
    """

    method_name: str
    sequence_id: int
    kind: ResultKind = ResultKind.SUCCESS
    value: Any = None
    exception_name: Optional[str] = None
    exception_fields: Dict[str, Any] = field(default_factory=dict)
    message: str = ""

    @classmethod
    def success(cls, call: CallEnvelope, value: Any) -> "ResultEnvelope":
        return cls(
            method_name=call.wire_name,
            sequence_id=call.sequence_id,
            value=value,
        )

    @classmethod
    def application_exception(
        cls,
        call: CallEnvelope,
        exception_name: str,
        exception_fields: Dict[str, Any],
    ) -> "ResultEnvelope":
        return cls(
            method_name=call.wire_name,
            sequence_id=call.sequence_id,
            kind=ResultKind.APPLICATION_EXCEPTION,
            exception_name=exception_name,
            exception_fields=dict(exception_fields),
        )

    @classmethod
    def internal_error(cls, call: CallEnvelope, message: str) -> "ResultEnvelope":
        return cls(
            method_name=call.wire_name,
            sequence_id=call.sequence_id,
            kind=ResultKind.INTERNAL_ERROR,
            message=message,
        )

    @property
    def is_success(self) -> bool:
        return self.kind is ResultKind.SUCCESS
