"""
Content-Type parsing and body classification.

The classifier decides how the raw body parser treats a request body:
as text, as opaque bytes, or as bytes that become text when they turn out
to be valid UTF-8.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# RFC 7230 token characters
_TOKEN = r"[!#$%&'*+.^_`|~0-9A-Za-z-]+"
_TYPE_RE = re.compile(rf"^({_TOKEN})/({_TOKEN})$")
_PARAM_RE = re.compile(
    rf"\s*;\s*({_TOKEN})\s*=\s*(\"(?:[^\"\\]|\\.)*\"|{_TOKEN})\s*"
)

# application/* subtypes that are never sniffed for UTF-8
BINARY_APPLICATION_SUBTYPES = frozenset({"octet-stream", "cbor", "x-protobuf"})


class ContentVerdict(str, Enum):
    TEXT = "text"
    BINARY_RAW = "binary_raw"
    BINARY_CHECK_UTF8 = "binary_check_utf8"


@dataclass(frozen=True)
class MediaType:
    type: str
    subtype: str
    suffix: Optional[str] = None
    parameters: Dict[str, str] = field(default_factory=dict)

    @property
    def essence(self) -> str:
        if self.suffix:
            return f"{self.type}/{self.subtype}+{self.suffix}"
        return f"{self.type}/{self.subtype}"


def parse_media_type(value: str) -> MediaType:
    """
    Parse a Content-Type header value.

    Raises:
        ValueError: if the value is not a well formed media type
    """
    if not isinstance(value, str):
        raise ValueError("content-type must be a string")

    head, sep, rest = value.partition(";")
    match = _TYPE_RE.match(head.strip())
    if not match:
        raise ValueError(f"invalid media type: {value!r}")

    media_type, subtype = match.group(1).lower(), match.group(2).lower()
    suffix = None
    if "+" in subtype:
        subtype, _, suffix = subtype.rpartition("+")
        if not subtype or not suffix:
            raise ValueError(f"invalid media type: {value!r}")

    parameters: Dict[str, str] = {}
    if sep:
        index = len(head)
        while index < len(value):
            param = _PARAM_RE.match(value, index)
            if not param or param.end() == index:
                raise ValueError(f"invalid parameter format in {value!r}")
            key, param_value = param.group(1).lower(), param.group(2)
            if param_value.startswith('"'):
                param_value = re.sub(r"\\(.)", r"\1", param_value[1:-1])
            parameters[key] = param_value
            index = param.end()

    return MediaType(media_type, subtype, suffix, parameters)


def classify(content_type: Optional[str]) -> ContentVerdict:
    """Decide how a body with the given Content-Type should be decoded."""
    if not content_type:
        return ContentVerdict.TEXT

    try:
        parsed = parse_media_type(content_type)
    except ValueError as e:
        logger.debug(f"Unparseable content-type, treating body as text: {e}")
        return ContentVerdict.TEXT

    if parsed.type == "text":
        return ContentVerdict.TEXT
    if parsed.subtype == "xml" or parsed.suffix == "xml":
        return ContentVerdict.TEXT
    if parsed.type != "application":
        return ContentVerdict.BINARY_RAW
    if parsed.subtype not in BINARY_APPLICATION_SUBTYPES:
        return ContentVerdict.BINARY_CHECK_UTF8
    return ContentVerdict.BINARY_RAW


def charset_of(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    try:
        return parse_media_type(content_type).parameters.get("charset")
    except ValueError:
        return None


def _normalize(expected: str) -> str:
    if expected.startswith("+"):
        return f"*/*{expected}"
    if "/" not in expected:
        shorthand = {
            "json": "application/json",
            "urlencoded": "application/x-www-form-urlencoded",
            "multipart": "multipart/*",
            "text": "text/*",
            "html": "text/html",
            "xml": "application/xml",
        }
        return shorthand.get(expected, f"*/{expected}")
    return expected.lower()


def type_is(content_type: Optional[str], *types: str) -> Optional[str]:
    """
    Match a Content-Type against one or more candidate types.

    Candidates may be full types ("application/json"), wildcards ("text/*",
    "*/*"), suffixes ("+json") or shorthands ("json", "urlencoded").
    Returns the first candidate that matches, or None.
    """
    if not content_type:
        return None
    try:
        actual = parse_media_type(content_type)
    except ValueError:
        return None

    for candidate in types:
        expected = _normalize(candidate)
        exp_type, _, exp_subtype = expected.partition("/")
        exp_suffix = None
        if "+" in exp_subtype:
            exp_subtype, _, exp_suffix = exp_subtype.rpartition("+")

        if exp_type != "*" and exp_type != actual.type:
            continue
        if exp_suffix is not None:
            if exp_suffix != actual.suffix:
                continue
            if exp_subtype not in ("*", actual.subtype):
                continue
            return candidate
        if exp_subtype == "*" or (exp_subtype == actual.subtype and actual.suffix is None):
            return candidate
    return None
