#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Call and result envelopes on top of the wire codecs.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from typing import Any, Dict, Mapping, Tuple

from ..core.utils.exceptions import DecodeError
from .codecs import get_codec
from .models import (
    MULTIPLEX_SEPARATOR,
    CallEnvelope,
    MessageType,
    ResultEnvelope,
    ResultKind,
    SerializationFormat,
    WireMessage,
)

_CALL_TYPES = (MessageType.CALL, MessageType.ONEWAY)


def split_method_name(wire_name: str, multiplexed: bool) -> Tuple[str, str]:
    """
    Split ``key:method`` into ``(key, method)``.

    Only multiplexed endpoints treat the colon as a separator; a name without
    a colon targets the default (empty-key) service.
    """
    if not multiplexed:
        return "", wire_name
    key, separator, method = wire_name.partition(MULTIPLEX_SEPARATOR)
    if not separator:
        return "", wire_name
    return key, method


class EnvelopeDecoder:
    """
    Parse request/response bodies into envelopes.
    """

    def __init__(self, multiplexed: bool = False) -> None:
        self.multiplexed = multiplexed

    def decode_call(self, serialization_format: SerializationFormat, data: bytes) -> CallEnvelope:
        message = get_codec(serialization_format).read_message(data)
        if message.message_type not in _CALL_TYPES:
            raise DecodeError(
                "Expected a CALL or ONEWAY message",
                message_type=message.message_type.name,
            )
        if not message.name:
            raise DecodeError("Method name must not be empty")
        if not isinstance(message.body, list):
            raise DecodeError("Call arguments must be an array", method_name=message.name)

        service_key, method_name = split_method_name(message.name, self.multiplexed)
        if not method_name:
            raise DecodeError("Method name must not be empty", service_key=service_key)

        return CallEnvelope(
            method_name=method_name,
            sequence_id=message.sequence_id,
            arguments=tuple(message.body),
            service_key=service_key,
            oneway=message.message_type is MessageType.ONEWAY,
        )

    def decode_result(self, serialization_format: SerializationFormat, data: bytes) -> ResultEnvelope:
        message = get_codec(serialization_format).read_message(data)
        body = message.body

        if message.message_type is MessageType.EXCEPTION:
            if not isinstance(body, Mapping) or not isinstance(body.get("message"), str):
                raise DecodeError("EXCEPTION body must carry a message")
            return ResultEnvelope(
                method_name=message.name,
                sequence_id=message.sequence_id,
                kind=ResultKind.INTERNAL_ERROR,
                message=body["message"],
            )

        if message.message_type is not MessageType.REPLY:
            raise DecodeError(
                "Expected a REPLY or EXCEPTION message",
                message_type=message.message_type.name,
            )
        if not isinstance(body, Mapping) or len(body) != 1:
            raise DecodeError("REPLY body must hold exactly one of success/exception")

        if "success" in body:
            return ResultEnvelope(
                method_name=message.name,
                sequence_id=message.sequence_id,
                value=body["success"],
            )

        exception = body.get("exception")
        if (
            not isinstance(exception, Mapping)
            or not isinstance(exception.get("name"), str)
            or not isinstance(exception.get("fields"), Mapping)
        ):
            raise DecodeError("Malformed declared exception in REPLY body")
        return ResultEnvelope(
            method_name=message.name,
            sequence_id=message.sequence_id,
            kind=ResultKind.APPLICATION_EXCEPTION,
            exception_name=exception["name"],
            exception_fields=dict(exception["fields"]),
        )


class EnvelopeEncoder:
    """
    Produce request/response bodies from envelopes.
    """

    def encode_result(self, serialization_format: SerializationFormat, result: ResultEnvelope) -> bytes:
        body: Dict[str, Any]
        message_type = MessageType.REPLY
        if result.kind is ResultKind.SUCCESS:
            body = {"success": result.value}
        elif result.kind is ResultKind.APPLICATION_EXCEPTION:
            body = {
                "exception": {
                    "name": result.exception_name,
                    "fields": dict(result.exception_fields),
                }
            }
        else:
            message_type = MessageType.EXCEPTION
            body = {"message": result.message}

        return get_codec(serialization_format).write_message(
            WireMessage(
                name=result.method_name,
                message_type=message_type,
                sequence_id=result.sequence_id,
                body=body,
            )
        )

    def encode_call(self, serialization_format: SerializationFormat, call: CallEnvelope) -> bytes:
        return get_codec(serialization_format).write_message(
            WireMessage(
                name=call.wire_name,
                message_type=MessageType.ONEWAY if call.oneway else MessageType.CALL,
                sequence_id=call.sequence_id,
                body=list(call.arguments),
            )
        )
