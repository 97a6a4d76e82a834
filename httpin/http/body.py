"""
Request body reading and raw-body decoding.
"""

import asyncio
import logging
import zlib
from typing import Optional, Union

from starlette.requests import ClientDisconnect

from httpin.errors import BodyReadError, ParseError
from httpin.http.content import ContentVerdict, classify
from httpin.http.request import NativeRequest

logger = logging.getLogger(__name__)


def _declared_length(req: NativeRequest) -> Optional[int]:
    raw = req.headers.get("content-length")
    if raw is None:
        return None
    try:
        length = int(raw)
    except ValueError:
        raise BodyReadError(f"invalid content-length: {raw!r}")
    if length < 0:
        raise BodyReadError(f"invalid content-length: {raw!r}")
    return length


def inflate(data: bytes, encoding: Optional[str]) -> bytes:
    """
    Undo a gzip or deflate Content-Encoding.

    Raises:
        ParseError: unsupported encoding (415) or a corrupt stream (400)
    """
    encoding = (encoding or "identity").strip().lower()
    if encoding == "identity":
        return data
    try:
        if encoding in ("gzip", "x-gzip"):
            return zlib.decompress(data, 16 + zlib.MAX_WBITS)
        if encoding == "deflate":
            try:
                return zlib.decompress(data)
            except zlib.error:
                # Some clients send a raw deflate stream without the zlib header
                return zlib.decompress(data, -zlib.MAX_WBITS)
    except zlib.error as e:
        raise ParseError(f"invalid {encoding} body: {e}", status_code=400)
    raise ParseError(f'unsupported content encoding "{encoding}"', status_code=415)


async def read_bytes(
    req: NativeRequest, *, timeout: float, limit: Optional[int] = None, decompress: bool = False
) -> bytes:
    """
    Read the whole request body.

    With ``decompress`` a gzip or deflate body is inflated first and
    ``limit`` applies to the inflated size.

    Raises:
        ParseError: the declared or received size exceeds ``limit`` (413),
            or the Content-Encoding cannot be undone (400/415)
        BodyReadError: the read timed out, the client went away, or the
            received size differs from Content-Length
    """
    length = _declared_length(req)
    encoding = req.headers.get("content-encoding") if decompress else None
    if limit is not None and length is not None and length > limit and encoding is None:
        raise ParseError("request entity too large", status_code=413)

    try:
        data = await asyncio.wait_for(req.raw.body(), timeout=timeout)
    except asyncio.TimeoutError:
        raise BodyReadError(f"request body not received within {timeout}s")
    except ClientDisconnect:
        raise BodyReadError("request aborted")

    if length is not None and len(data) != length:
        raise BodyReadError("request size did not match content length")
    if decompress:
        data = inflate(data, encoding)
    if limit is not None and len(data) > limit:
        raise ParseError("request entity too large", status_code=413)
    return data


def is_utf8(data: bytes) -> bool:
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def decode_body(data: bytes, verdict: ContentVerdict) -> Union[str, bytes]:
    if verdict is ContentVerdict.TEXT:
        return data.decode("utf-8", errors="replace")
    if verdict is ContentVerdict.BINARY_CHECK_UTF8 and is_utf8(data):
        return data.decode("utf-8")
    return data


async def read_raw_body(req: NativeRequest, *, timeout: float) -> None:
    """
    Fill ``req.body`` with the raw body unless an earlier stage consumed it.

    Text bodies become UTF-8 ``str`` whatever charset is declared. Binary
    bodies stay ``bytes``, except application/* types that turn out to be
    valid UTF-8.
    """
    if req.skip_raw_body_parser or req.body_consumed:
        return

    req.body = ""
    req.body_consumed = True

    verdict = classify(req.headers.get("content-type"))
    data = await read_bytes(req, timeout=timeout)
    req.body = decode_body(data, verdict)
    logger.debug(f"Raw body read: {len(data)} bytes as {verdict.value}")
