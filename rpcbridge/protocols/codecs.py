#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Wire codecs for rpcbridge.

Each codec turns a ``WireMessage`` into bytes and back for one
``SerializationFormat``. Codecs are stateless singletons, safe to share across
concurrent requests; obtain them with ``get_codec``.

Layouts:
- BINARY  (msgpack): ``[version, name, type, seqid, body]``
- COMPACT (cbor2):   ``[version, name, type, seqid, body]``
- JSON:              ``[version, name, type, seqid, body]`` without whitespace,
                     binary values as ``{"__bytes__": "<base64>"}``, one-key maps
                     on a reserved key wrapped in ``{"__map__": {...}}``,
                     string map keys only
- TEXT:              indented JSON object with named keys and the message type
                     spelled out. Meant for debugging, not for throughput.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import base64
import binascii
import io
import json
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Dict, List

import cbor2
import msgpack

from ..core.utils.exceptions import DecodeError, EncodingError, ExceptionTranslator
from .models import MessageType, SerializationFormat, WireMessage

WIRE_VERSION = 1
INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

_BYTES_KEY = "__bytes__"
_MAP_KEY = "__map__"
_RESERVED_KEYS = (_BYTES_KEY, _MAP_KEY)


def _validate_header(name: Any, sequence_id: Any) -> None:
    if not isinstance(name, str):
        raise DecodeError("Message name must be a string")
    if isinstance(sequence_id, bool) or not isinstance(sequence_id, int):
        raise DecodeError("Sequence id must be an integer")
    if not INT32_MIN <= sequence_id <= INT32_MAX:
        raise DecodeError(
            "Sequence id out of 32-bit range", sequence_id=sequence_id
        )


def _parse_message_type(value: Any) -> MessageType:
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError("Message type must be an integer", message_type=value)
    try:
        return MessageType(value)
    except ValueError as exc:
        raise DecodeError("Unknown message type", cause=exc, message_type=value) from exc


class Codec(ABC):
    """
    Base contract for wire codecs.
    """

    format: SerializationFormat

    def write_message(self, message: WireMessage) -> bytes:
        """
        Serialize a message. Raises ``EncodingError`` for un-encodable values.
        """
        try:
            return self._dump(self._to_frame(message))
        except EncodingError:
            raise
        except Exception as exc:
            raise ExceptionTranslator.as_encoding_error(exc, self.format.value) from exc

    def read_message(self, data: bytes) -> WireMessage:
        """
        Parse a message. Every failure surfaces as ``DecodeError``.
        """
        if not data:
            raise DecodeError("Empty {0} payload".format(self.format.value))
        try:
            frame = self._load(bytes(data))
        except DecodeError:
            raise
        except Exception as exc:
            raise ExceptionTranslator.as_decode_error(exc, self.format.value) from exc
        return self._from_frame(frame)

    def _to_frame(self, message: WireMessage) -> Any:
        return [
            WIRE_VERSION,
            message.name,
            int(message.message_type),
            message.sequence_id,
            message.body,
        ]

    def _from_frame(self, frame: Any) -> WireMessage:
        if not isinstance(frame, list) or len(frame) != 5:
            raise DecodeError(
                "{0} envelope must be a 5-element array".format(self.format.value)
            )
        version, name, raw_type, sequence_id, body = frame
        if version != WIRE_VERSION:
            raise DecodeError("Unsupported envelope version", version=version)
        message_type = _parse_message_type(raw_type)
        _validate_header(name, sequence_id)
        return WireMessage(
            name=name,
            message_type=message_type,
            sequence_id=sequence_id,
            body=body,
        )

    @abstractmethod
    def _dump(self, frame: Any) -> bytes:
        """
        Encode a frame with the underlying library.
        """

    @abstractmethod
    def _load(self, data: bytes) -> Any:
        """
        Decode a frame with the underlying library.
        """


class BinaryCodec(Codec):
    format = SerializationFormat.BINARY

    def _dump(self, frame: Any) -> bytes:
        return msgpack.packb(frame, use_bin_type=True)

    def _load(self, data: bytes) -> Any:
        return msgpack.unpackb(data, raw=False, strict_map_key=False)


class CompactCodec(Codec):
    format = SerializationFormat.COMPACT

    def _dump(self, frame: Any) -> bytes:
        return cbor2.dumps(frame)

    def _load(self, data: bytes) -> Any:
        # read_size=1 keeps the stream position exact after one item
        fp = io.BytesIO(data)
        frame = cbor2.CBORDecoder(fp, read_size=1).decode()
        if fp.tell() != len(data):
            raise DecodeError(
                "Trailing bytes after COMPACT envelope",
                consumed=fp.tell(),
                length=len(data),
            )
        return frame


def _to_json(value: Any) -> Any:
    """
    Rewrite a body value into plain JSON types.

    Binary values become ``{"__bytes__": "<base64>"}``. A one-key map whose key
    is one of the reserved tags is wrapped as ``{"__map__": {...}}`` so user
    data never reads back as a tag. Map keys must be strings.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {_BYTES_KEY: base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        converted = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise EncodingError(
                    "JSON map keys must be strings",
                    key_type=type(key).__name__,
                )
            converted[key] = _to_json(item)
        if len(converted) == 1 and next(iter(converted)) in _RESERVED_KEYS:
            return {_MAP_KEY: converted}
        return converted
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_json(item) for item in value]
    return value


def _from_json(value: Any) -> Any:
    if isinstance(value, list):
        return [_from_json(item) for item in value]
    if not isinstance(value, dict):
        return value
    if len(value) == 1:
        if isinstance(value.get(_BYTES_KEY), str):
            try:
                return base64.b64decode(value[_BYTES_KEY], validate=True)
            except binascii.Error as exc:
                raise DecodeError("Invalid base64 binary value", cause=exc) from exc
        if isinstance(value.get(_MAP_KEY), dict):
            return {key: _from_json(item) for key, item in value[_MAP_KEY].items()}
    return {key: _from_json(item) for key, item in value.items()}


class JsonCodec(Codec):
    format = SerializationFormat.JSON

    def _to_frame(self, message: WireMessage) -> Any:
        frame = super()._to_frame(message)
        frame[4] = _to_json(message.body)
        return frame

    def _from_frame(self, frame: Any) -> WireMessage:
        message = super()._from_frame(frame)
        return replace(message, body=_from_json(message.body))

    def _dump(self, frame: Any) -> bytes:
        return json.dumps(frame, separators=(",", ":"), allow_nan=False).encode("utf-8")

    def _load(self, data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))


class TextCodec(JsonCodec):
    format = SerializationFormat.TEXT

    _KEYS = ("version", "method", "type", "seqid", "body")

    def _to_frame(self, message: WireMessage) -> Any:
        return {
            "version": WIRE_VERSION,
            "method": message.name,
            "type": message.message_type.name,
            "seqid": message.sequence_id,
            "body": _to_json(message.body),
        }

    def _from_frame(self, frame: Any) -> WireMessage:
        if not isinstance(frame, dict):
            raise DecodeError("TEXT envelope must be an object")
        missing: List[str] = [key for key in self._KEYS if key not in frame]
        if missing:
            raise DecodeError("TEXT envelope is missing keys", missing=missing)

        type_name = frame["type"]
        if not isinstance(type_name, str) or type_name.upper() not in MessageType.__members__:
            raise DecodeError("Unknown message type", message_type=type_name)

        return super()._from_frame(
            [
                frame["version"],
                frame["method"],
                int(MessageType[type_name.upper()]),
                frame["seqid"],
                frame["body"],
            ]
        )

    def _dump(self, frame: Any) -> bytes:
        return json.dumps(
            frame,
            indent=2,
            ensure_ascii=False,
            allow_nan=False,
        ).encode("utf-8")


_CODECS: Dict[SerializationFormat, Codec] = {
    codec.format: codec
    for codec in (BinaryCodec(), CompactCodec(), JsonCodec(), TextCodec())
}


def get_codec(serialization_format: SerializationFormat) -> Codec:
    """
    Return the shared codec for a format.
    """
    return _CODECS[SerializationFormat.from_value(serialization_format)]


__all__ = [
    "Codec",
    "BinaryCodec",
    "CompactCodec",
    "JsonCodec",
    "TextCodec",
    "WIRE_VERSION",
    "get_codec",
]
