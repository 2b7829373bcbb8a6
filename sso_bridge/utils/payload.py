"""Encoding of the opaque ``sso`` payload.

The payload is a base64 envelope around a URL query string. Pairs are kept as
an ordered list so the output never depends on mapping iteration order.
"""
import base64
import binascii
import re
from urllib.parse import parse_qsl, urlencode

from sso_bridge.errors import MalformedPayloadError

Pairs = list[tuple[str, str]]

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def encode_payload(pairs: Pairs) -> str:
    query = urlencode(pairs)
    return base64.b64encode(query.encode("utf-8")).decode("ascii")


def decode_payload(payload: str) -> Pairs:
    # Some forum versions wrap the base64 text every 60 characters
    compact = "".join(payload.split())
    try:
        raw = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        raise MalformedPayloadError("payload is not valid base64") from None

    try:
        body = raw.decode("ascii")
    except UnicodeDecodeError:
        raise MalformedPayloadError("payload body is not ASCII") from None

    if not body:
        return []

    if _BAD_ESCAPE.search(body):
        raise MalformedPayloadError("payload body has an invalid percent escape")

    try:
        return parse_qsl(body, keep_blank_values=True, strict_parsing=True, errors="strict")
    except (ValueError, UnicodeDecodeError):
        raise MalformedPayloadError("payload body is not a query string") from None


def get_value(pairs: Pairs, key: str) -> str | None:
    """First value stored under ``key``, or None."""
    for name, value in pairs:
        if name == key:
            return value
    return None
