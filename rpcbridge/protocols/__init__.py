#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
rpcbridge wire protocols: formats, codecs, negotiation and envelopes.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from .models import (
    GENERIC_MEDIA_TYPE,
    CallEnvelope,
    MessageType,
    ResultEnvelope,
    ResultKind,
    SerializationFormat,
    WireMessage,
)
from .codecs import BinaryCodec, Codec, CompactCodec, JsonCodec, TextCodec, get_codec
from .negotiation import FormatNegotiator, parse_content_type
from .envelope import EnvelopeDecoder, EnvelopeEncoder, split_method_name

__all__ = [
    "GENERIC_MEDIA_TYPE",
    "SerializationFormat",
    "MessageType",
    "WireMessage",
    "CallEnvelope",
    "ResultEnvelope",
    "ResultKind",
    "Codec",
    "BinaryCodec",
    "CompactCodec",
    "JsonCodec",
    "TextCodec",
    "get_codec",
    "FormatNegotiator",
    "parse_content_type",
    "EnvelopeDecoder",
    "EnvelopeEncoder",
    "split_method_name",
]
