#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Content-type negotiation for rpcbridge.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from ..core.utils.exceptions import ConfigurationError, NegotiationError
from .models import GENERIC_MEDIA_TYPE, VENDOR_MEDIA_TYPE_PREFIX, SerializationFormat

_IGNORED_PARAMETERS = ("charset",)


def parse_content_type(header: str) -> Tuple[str, Dict[str, str]]:
    """
    Split a content-type header into a lower-cased media type and parameters.

    Parameter names are lower-cased; values keep their case with surrounding
    quotes removed.
    """
    parts = header.split(";")
    media_type = parts[0].strip().lower()
    parameters: Dict[str, str] = {}
    for raw in parts[1:]:
        raw = raw.strip()
        if not raw:
            continue
        name, separator, value = raw.partition("=")
        if not separator:
            raise NegotiationError(
                "Malformed content-type parameter", content_type=header
            )
        parameters[name.strip().lower()] = value.strip().strip('"')
    return media_type, parameters


def _format_from_name(name: str, header: str) -> SerializationFormat:
    try:
        return SerializationFormat.from_value(name)
    except ValueError as exc:
        raise NegotiationError(
            "Unknown serialization format: {0}".format(name),
            cause=exc,
            content_type=header,
        ) from exc


class FormatNegotiator:
    """
    Select the serialization format of a request from its content-type.

    Precedence: vendor media type, then the generic media type with a
    ``protocol`` parameter, then the configured default. The allow-list is
    authoritative: a supported format outside it is rejected.
    """

    def __init__(
        self,
        default_format: Union[SerializationFormat, str] = SerializationFormat.BINARY,
        allowed_formats: Optional[Iterable[Union[SerializationFormat, str]]] = None,
    ) -> None:
        self.default_format = SerializationFormat.from_value(default_format)
        if allowed_formats is None:
            allowed: FrozenSet[SerializationFormat] = frozenset(SerializationFormat)
        else:
            allowed = frozenset(SerializationFormat.from_value(fmt) for fmt in allowed_formats)
        if not allowed:
            raise ConfigurationError("At least one serialization format must be allowed")
        if self.default_format not in allowed:
            raise ConfigurationError(
                "Default format must be one of the allowed formats",
                default_format=self.default_format.value,
                allowed_formats=sorted(fmt.value for fmt in allowed),
            )
        self.allowed_formats = allowed

    def supported_media_types(self) -> List[str]:
        media_types: List[str] = []
        for fmt in SerializationFormat:
            if fmt in self.allowed_formats:
                media_types.extend([fmt.media_type, fmt.vendor_media_type])
        return media_types

    def negotiate(self, content_type: Optional[str]) -> SerializationFormat:
        """
        Resolve a content-type header value; raises ``NegotiationError``.
        """
        if content_type is None or not content_type.strip():
            return self._ensure_allowed(self.default_format, content_type)

        media_type, parameters = parse_content_type(content_type)
        for name in _IGNORED_PARAMETERS:
            parameters.pop(name, None)
        protocol = parameters.pop("protocol", None)
        if parameters:
            raise NegotiationError(
                "Unsupported content-type parameters: {0}".format(
                    ", ".join(sorted(parameters))
                ),
                content_type=content_type,
            )

        if media_type.startswith(VENDOR_MEDIA_TYPE_PREFIX):
            resolved = _format_from_name(
                media_type[len(VENDOR_MEDIA_TYPE_PREFIX):], content_type
            )
            if protocol is not None and _format_from_name(protocol, content_type) is not resolved:
                raise NegotiationError(
                    "Vendor media type conflicts with protocol parameter",
                    content_type=content_type,
                )
        elif media_type == GENERIC_MEDIA_TYPE:
            if protocol is None:
                resolved = self.default_format
            else:
                resolved = _format_from_name(protocol, content_type)
        else:
            raise NegotiationError(
                "Unsupported media type: {0}".format(media_type),
                content_type=content_type,
            )

        return self._ensure_allowed(resolved, content_type)

    def _ensure_allowed(
        self, resolved: SerializationFormat, content_type: Optional[str]
    ) -> SerializationFormat:
        if resolved not in self.allowed_formats:
            raise NegotiationError(
                "Serialization format not allowed: {0}".format(resolved.value),
                content_type=content_type,
                format=resolved.value,
            )
        return resolved
