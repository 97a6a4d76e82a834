"""
Express-style request object built on top of a starlette Request.

Flow nodes receive this object as ``msg["req"]``. The pipeline stages fill in
``body``, ``cookies`` and ``files`` as they run.
"""

import mimetypes
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from starlette.datastructures import Headers
from starlette.requests import Request

from httpin.http.content import type_is
from httpin.http.qs import parse_nested


@dataclass
class UploadedFile:
    fieldname: str
    originalname: Optional[str]
    encoding: str
    mimetype: Optional[str]
    buffer: bytes
    size: int


def _parse_accept(header: Optional[str]) -> List[Tuple[str, float]]:
    """Parse an Accept-* header into (value, q) pairs, best first."""
    entries = []
    if not header:
        return entries
    for position, part in enumerate(header.split(",")):
        value, *params = [p.strip() for p in part.split(";")]
        if not value:
            continue
        q = 1.0
        for param in params:
            name, _, raw = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    q = float(raw)
                except ValueError:
                    q = 0.0
        if q > 0:
            entries.append((value.lower(), q, position))
    entries.sort(key=lambda e: (-e[1], e[2]))
    return [(value, q) for value, q, _ in entries]


def _token_matches(accepted: str, offer: str, kind: str) -> bool:
    offer = offer.lower()
    if accepted == "*" or accepted == offer:
        return True
    if kind == "language":
        return offer.split("-")[0] == accepted or accepted.split("-")[0] == offer
    if kind == "type":
        acc_type, _, acc_sub = accepted.partition("/")
        off_type, _, off_sub = offer.partition("/")
        return acc_type in ("*", off_type) and acc_sub in ("*", off_sub)
    return False


def negotiate(header: Optional[str], offers: Tuple[str, ...], kind: str) -> Union[str, List[str], bool]:
    """
    Pick the best offer for an Accept-* header.

    With no offers, returns the accepted values in preference order. With
    offers, returns the preferred one, or False when none is acceptable.
    A missing header accepts everything.
    """
    accepted = _parse_accept(header)
    if not offers:
        return [value for value, _ in accepted] if header else ["*"]
    if not header:
        return offers[0]

    for value, _ in accepted:
        for offer in offers:
            candidate = offer
            if kind == "type" and "/" not in offer:
                candidate = mimetypes.guess_type(f"x.{offer}")[0] or offer
            if _token_matches(value, candidate, kind):
                return offer
    return False


class NativeRequest:
    """The request handed to flow nodes."""

    def __init__(self, request: Request, *, app: Any = None, route: Optional[Dict[str, Any]] = None):
        self.raw = request
        self.app = app
        self.route = route
        self.res = None

        self.method: str = request.method
        self.headers: Headers = request.headers
        self.params: Dict[str, Any] = dict(request.path_params)
        self.query: Dict[str, Any] = parse_nested(request.query_params.multi_items())

        self.body: Any = None
        self.body_consumed = False
        self.skip_raw_body_parser = False
        self.cookies: Dict[str, Any] = {}
        self.signed_cookies: Dict[str, Any] = {}
        self.files: List[UploadedFile] = []

    # -- fields ---------------------------------------------------------

    @property
    def path(self) -> str:
        return self.raw.url.path

    @property
    def original_url(self) -> str:
        query = self.raw.url.query
        return f"{self.path}?{query}" if query else self.path

    @property
    def base_url(self) -> str:
        return self.raw.scope.get("root_path", "")

    @property
    def protocol(self) -> str:
        return self.raw.url.scheme

    @property
    def secure(self) -> bool:
        return self.protocol in ("https", "wss")

    @property
    def hostname(self) -> Optional[str]:
        host = self.headers.get("host")
        if not host:
            return None
        if host.startswith("["):
            return host[: host.index("]") + 1]
        return host.split(":")[0]

    @property
    def ip(self) -> Optional[str]:
        client = self.raw.client
        return client.host if client else None

    @property
    def ips(self) -> List[str]:
        # Proxy addresses are only trusted when a proxy is configured
        return []

    @property
    def subdomains(self) -> List[str]:
        hostname = self.hostname
        if not hostname or hostname.startswith("[") or hostname.replace(".", "").isdigit():
            return []
        return list(reversed(hostname.split(".")))[2:]

    @property
    def xhr(self) -> bool:
        return self.headers.get("x-requested-with", "").lower() == "xmlhttprequest"

    @property
    def socket(self):
        return self.raw.client

    @property
    def has_body(self) -> bool:
        return "transfer-encoding" in self.headers or "content-length" in self.headers

    @property
    def fresh(self) -> bool:
        if self.method not in ("GET", "HEAD"):
            return False
        status = self.res.status_code if self.res is not None else 200
        if not (200 <= status < 300 or status == 304):
            return False
        response_headers = self.res.headers if self.res is not None else {}
        return _is_fresh(self.headers, response_headers)

    @property
    def stale(self) -> bool:
        return not self.fresh

    # -- operations -----------------------------------------------------

    def get(self, name: str) -> Optional[str]:
        name = name.lower()
        if name in ("referer", "referrer"):
            return self.headers.get("referer") or self.headers.get("referrer")
        return self.headers.get(name)

    header = get

    def param(self, name: str, default: Any = None) -> Any:
        if name in self.params:
            return self.params[name]
        if isinstance(self.body, dict) and name in self.body:
            return self.body[name]
        if name in self.query:
            return self.query[name]
        return default

    def is_(self, *types: str) -> Optional[str]:
        if not self.has_body:
            return None
        return type_is(self.headers.get("content-type"), *types)

    def accepts(self, *types: str):
        return negotiate(self.headers.get("accept"), types, "type")

    def accepts_charsets(self, *charsets: str):
        return negotiate(self.headers.get("accept-charset"), charsets, "charset")

    def accepts_languages(self, *languages: str):
        return negotiate(self.headers.get("accept-language"), languages, "language")

    def __repr__(self) -> str:
        return f"<NativeRequest {self.method} {self.original_url}>"


def _is_fresh(request_headers, response_headers) -> bool:
    modified_since = request_headers.get("if-modified-since")
    none_match = request_headers.get("if-none-match")
    if not modified_since and not none_match:
        return False

    cache_control = request_headers.get("cache-control", "")
    if "no-cache" in cache_control:
        return False

    if none_match and none_match != "*":
        etag = response_headers.get("etag")
        if not etag:
            return False
        tags = [t.strip() for t in none_match.split(",")]
        bare = etag[2:] if etag.startswith("W/") else etag
        if not any(t in (etag, bare, f"W/{bare}") for t in tags):
            return False

    if modified_since:
        last_modified = response_headers.get("last-modified")
        if not last_modified:
            return False
        try:
            if parsedate_to_datetime(last_modified) > parsedate_to_datetime(modified_since):
                return False
        except (TypeError, ValueError):
            return False

    return True
