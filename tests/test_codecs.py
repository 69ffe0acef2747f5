#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Tests for the per-format wire codecs.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import json

import msgpack
import pytest

from rpcbridge.core.utils.exceptions import DecodeError, EncodingError
from rpcbridge.protocols import MessageType, SerializationFormat, WireMessage, get_codec

ALL_FORMATS = list(SerializationFormat)


def _message(body=None, sequence_id=7):
    return WireMessage(
        name="hello",
        message_type=MessageType.CALL,
        sequence_id=sequence_id,
        body=["Bob"] if body is None else body,
    )


@pytest.mark.parametrize("fmt", ALL_FORMATS)
def test_codec_reads_back_what_it_writes(fmt):
    codec = get_codec(fmt)
    message = _message(
        body=["Bob", 3, 2.5, None, True, {"k": [1, 2]}, b"\x00\xff"],
        sequence_id=-12,
    )

    assert codec.read_message(codec.write_message(message)) == message


@pytest.mark.parametrize("fmt", ALL_FORMATS)
def test_truncated_payload_raises_decode_error(fmt):
    codec = get_codec(fmt)
    data = codec.write_message(_message())

    with pytest.raises(DecodeError):
        codec.read_message(data[:-3])


@pytest.mark.parametrize("fmt", ALL_FORMATS)
def test_empty_payload_raises_decode_error(fmt):
    with pytest.raises(DecodeError):
        get_codec(fmt).read_message(b"")


def test_codecs_are_shared_singletons():
    assert get_codec(SerializationFormat.JSON) is get_codec("json")
    assert get_codec(SerializationFormat.BINARY).format is SerializationFormat.BINARY


def test_binary_codec_rejects_non_array_frame():
    codec = get_codec(SerializationFormat.BINARY)

    with pytest.raises(DecodeError):
        codec.read_message(msgpack.packb({"name": "hello"}))


def test_binary_codec_rejects_trailing_bytes():
    codec = get_codec(SerializationFormat.BINARY)
    data = codec.write_message(_message())

    with pytest.raises(DecodeError):
        codec.read_message(data + b"\x00")


def test_compact_codec_rejects_trailing_bytes():
    codec = get_codec(SerializationFormat.COMPACT)
    data = codec.write_message(_message())

    with pytest.raises(DecodeError):
        codec.read_message(data + b"\xff\xffgarbage")



@pytest.mark.parametrize(
    "frame",
    [
        [2, "hello", 1, 0, []],
        [1, "hello", 9, 0, []],
        [1, "hello", True, 0, []],
        [1, "hello", 1, True, []],
        [1, "hello", 1, 2 ** 31, []],
        [1, 42, 1, 0, []],
        [1, "hello", 1, 0],
    ],
)
def test_json_codec_rejects_structurally_invalid_frames(frame):
    codec = get_codec(SerializationFormat.JSON)

    with pytest.raises(DecodeError):
        codec.read_message(json.dumps(frame).encode("utf-8"))


def test_json_codec_encodes_binary_values_as_base64_objects():
    codec = get_codec(SerializationFormat.JSON)

    data = codec.write_message(_message(body=[b"\x00\xff"]))

    assert b'{"__bytes__":"AP8="}' in data
    assert codec.read_message(data).body == [b"\x00\xff"]


def test_json_codec_rejects_invalid_base64():
    codec = get_codec(SerializationFormat.JSON)

    with pytest.raises(DecodeError):
        codec.read_message(b'[1,"hello",1,0,[{"__bytes__":"***"}]]')


@pytest.mark.parametrize(
    "fmt, expected",
    [
        (SerializationFormat.BINARY, None),
        (SerializationFormat.COMPACT, None),
        (SerializationFormat.JSON, EncodingError),
        (SerializationFormat.TEXT, EncodingError),
    ],
)
def test_integer_map_keys_survive_or_are_refused(fmt, expected):
    codec = get_codec(fmt)
    message = _message(body=[{1: "one", 2: "two"}])

    if expected is None:
        assert codec.read_message(codec.write_message(message)) == message
    else:
        with pytest.raises(expected):
            codec.write_message(message)


def test_json_codec_escapes_maps_that_look_like_tags():
    codec = get_codec(SerializationFormat.JSON)
    body = [{"__bytes__": "AAAA"}, {"__map__": {"k": b"\x01"}}, {"__bytes__": 1}]

    data = codec.write_message(_message(body=body))

    assert b'{"__map__":{"__bytes__":"AAAA"}}' in data
    assert codec.read_message(data).body == body



def test_text_codec_is_human_readable():
    codec = get_codec(SerializationFormat.TEXT)

    text = codec.write_message(_message(body=["Zoë"])).decode("utf-8")

    assert '"type": "CALL"' in text
    assert '"method": "hello"' in text
    assert "Zoë" in text
    assert "\n  " in text


def test_text_codec_rejects_missing_keys_and_unknown_types():
    codec = get_codec(SerializationFormat.TEXT)

    with pytest.raises(DecodeError):
        codec.read_message(b'{"version": 1, "method": "hello"}')
    with pytest.raises(DecodeError):
        codec.read_message(
            b'{"version": 1, "method": "hello", "type": "PING", "seqid": 0, "body": []}'
        )


@pytest.mark.parametrize("fmt", ALL_FORMATS)
def test_unencodable_value_raises_encoding_error(fmt):
    with pytest.raises(EncodingError):
        get_codec(fmt).write_message(_message(body=[object()]))


def test_json_codec_refuses_nan():
    with pytest.raises(EncodingError):
        get_codec(SerializationFormat.JSON).write_message(_message(body=[float("nan")]))


def test_binary_codec_refuses_integers_wider_than_64_bits():
    with pytest.raises(EncodingError):
        get_codec(SerializationFormat.BINARY).write_message(_message(body=[2 ** 70]))
