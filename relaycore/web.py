"""HTTP front end of the relay: info document, metrics, favicon and sign-up pages."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Callable, Iterable, Iterator, Mapping, Union

from relaycore.metrics import Registry
from relaycore.pages import account_page, invoice_page, join_page
from relaycore.utils import is_hex, nip19_to_hex

log = logging.getLogger(__name__)

HeadersLike = Union[Mapping[str, str], Iterable[tuple[str, str]]]

_WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
_SECP256K1_P = 2**256 - 2**32 - 977
_FAVICON_CACHE = "public, max-age=2419200"
_NOT_ALLOWED_TO_JOIN = "Sorry, joining is not allowed at the moment"
_INVALID_KEY = "Looks like your key is invalid"
_HTML = "text/html; charset=UTF-8"


@dataclass
class WebResponse:
    """A status code, response headers and a body."""

    status: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        """The first header called ``name`` (case-insensitive), if any."""
        wanted = name.lower()
        return next((v for k, v in self.headers if k.lower() == wanted), None)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")


@dataclass
class SiteOptions:
    """What the web front end needs to know, and hooks into account payments.

    ``account_status`` returns whether a hex public key is admitted and
    raises ``LookupError`` for unknown accounts.  ``request_invoice`` is
    given the public key as entered and whether the account is new; it
    returns a bolt11 invoice, ``True`` if the account was admitted in the
    meantime, or ``None`` when no invoice could be had.
    """

    relay_info: dict[str, Any] = field(default_factory=dict)
    pay_to_relay_enabled: bool = False
    sign_ups: bool = False
    terms_message: str = ""
    admission_cost: int = 0
    relay_page: str | None = None
    account_status: Callable[[str], bool] | None = None
    request_invoice: Callable[[str, bool], "str | bool | None"] | None = None
    check_account: Callable[[str], None] | None = None
    on_invoice_paid: Callable[[str], None] | None = None
    qr_renderer: Callable[[str], str] | None = None


@dataclass
class ClientInfo:
    """Where a client connection came from."""

    remote_ip: str
    user_agent: str | None = None
    origin: str | None = None


def get_pubkey(query: str | None) -> str | None:
    """The value of the last ``pubkey`` parameter of a raw query string."""
    result: str | None = None
    for pair in (query or "").split("&"):
        key, sep, value = pair.partition("=")
        if key == "pubkey":
            result = value if sep else None
    return result


def _header_items(headers: HeadersLike) -> Iterator[tuple[str, str]]:
    if isinstance(headers, Mapping):
        yield from headers.items()
    else:
        yield from headers


def _header_map(headers: HeadersLike) -> dict[str, str]:
    result: dict[str, str] = {}
    for name, value in _header_items(headers):
        result.setdefault(name.lower(), value)
    return result


def _is_visible_header_value(value: str) -> bool:
    return all(c == "\t" or 32 <= ord(c) < 127 for c in value)


def get_header_string(name: str, headers: HeadersLike) -> str | None:
    """A header's value, or ``None`` if absent or not visible ASCII."""
    value = _header_map(headers).get(name.lower())
    if value is None or not _is_visible_header_value(value):
        return None
    return value


def file_bytes(path: str) -> bytes:
    """Read a whole file."""
    with open(path, "rb") as handle:
        return handle.read()


def client_info_from_headers(
    headers: HeadersLike, remote_ip: str, remote_ip_header: str | None
) -> ClientInfo:
    """Describe a client, preferring a proxy's IP header over the socket address."""
    header_ip = get_header_string(remote_ip_header, headers) if remote_ip_header else None
    return ClientInfo(
        remote_ip=header_ip if header_ip is not None else remote_ip,
        user_agent=get_header_string("user-agent", headers),
        origin=get_header_string("origin", headers),
    )


def _parse_public_key(text: str) -> str:
    """Return the hex of a public key given as hex or npub, or raise ValueError."""
    hex_key = nip19_to_hex(text) if text.startswith("npub1") else text
    if len(hex_key) != 64 or not is_hex(hex_key):
        raise ValueError("public key must be 32 bytes")
    x = int(hex_key, 16)
    if x >= _SECP256K1_P:
        raise ValueError("public key is not a field element")
    y_squared = (pow(x, 3, _SECP256K1_P) + 7) % _SECP256K1_P
    if pow(y_squared, (_SECP256K1_P - 1) // 2, _SECP256K1_P) != 1:
        raise ValueError("public key is not on the curve")
    return hex_key.lower()


def _text(status: int, body: str, content_type: str | None = "text/plain") -> WebResponse:
    headers = [("Content-Type", content_type)] if content_type else []
    return WebResponse(status, headers, body.encode("utf-8"))


def _redirect_to_join() -> WebResponse:
    return WebResponse(HTTPStatus.NOT_FOUND, [("location", "/join")], b"")


def _websocket_handshake(headers: dict[str, str]) -> WebResponse:
    def failure(reason: str) -> WebResponse:
        log.warning("websocket response failed")
        return _text(HTTPStatus.BAD_REQUEST, f"Failed to create websocket: {reason}", None)

    connection = headers.get("connection", "")
    if "upgrade" not in (token.strip().lower() for token in connection.split(",")):
        return failure("No \"Connection: upgrade\" header")
    if headers.get("upgrade", "").lower() != "websocket":
        return failure("No \"Upgrade: websocket\" header")
    if headers.get("sec-websocket-version") != "13":
        return failure("No \"Sec-WebSocket-Version: 13\" header")
    key = headers.get("sec-websocket-key")
    if key is None:
        return failure("Missing \"Sec-WebSocket-Key\" header")
    accept = base64.b64encode(hashlib.sha1((key + _WS_GUID).encode()).digest()).decode()
    return WebResponse(
        HTTPStatus.SWITCHING_PROTOCOLS,
        [("Connection", "Upgrade"), ("Upgrade", "websocket"), ("Sec-WebSocket-Accept", accept)],
    )


def _root(headers: dict[str, str], site: SiteOptions) -> WebResponse:
    accept = headers.get("accept")
    if accept is not None and _is_visible_header_value(accept) and "application/nostr+json" in accept:
        log.debug("Responding to server info request")
        return WebResponse(
            HTTPStatus.OK,
            [("Content-Type", "application/nostr+json"), ("Access-Control-Allow-Origin", "*")],
            json.dumps(site.relay_info, indent=2).encode("utf-8"),
        )
    if site.pay_to_relay_enabled:
        return WebResponse(HTTPStatus.TEMPORARY_REDIRECT, [("location", "/join")])
    if site.relay_page:
        try:
            return WebResponse(HTTPStatus.OK, [("Content-Type", _HTML)], file_bytes(site.relay_page))
        except OSError as err:
            log.error("Failed to read relay_page file: %s. Will use default", err)
    return _text(HTTPStatus.OK, "Please use a Nostr client to connect.")


def _lookup_admission(site: SiteOptions, key_hex: str) -> bool | None:
    """Admission status of an account, or ``None`` when it cannot be found."""
    if site.account_status is None:
        return None
    try:
        return bool(site.account_status(key_hex))
    except LookupError:
        return None


def _render_qr(site: SiteOptions, bolt11: str) -> str:
    if site.qr_renderer is not None:
        try:
            markup = site.qr_renderer(bolt11)
        except Exception as err:  # a broken renderer only costs the image
            log.warning("could not render invoice QR code: %s", err)
        else:
            if markup:
                return markup
    return "Could not render image"


def _invoice(query: str | None, site: SiteOptions) -> WebResponse:
    if not site.sign_ups:
        return _text(401, _NOT_ALLOWED_TO_JOIN)
    pubkey = get_pubkey(query)
    if pubkey is None:
        return _redirect_to_join()
    try:
        key_hex = _parse_public_key(pubkey)
    except ValueError:
        return _text(401, _INVALID_KEY)
    admitted = _lookup_admission(site, key_hex)
    if admitted:
        return _text(HTTPStatus.OK, "Already admitted", None)
    if site.request_invoice is None:
        log.warning("Could not send payment tx")
        return _text(501, "Sorry, something went wrong")
    try:
        reply = site.request_invoice(pubkey, admitted is None)
    except Exception as err:
        log.warning("Could not get invoice: %s", err)
        reply = None
    if reply is True:
        return _text(HTTPStatus.OK, "Already admitted", None)
    if not isinstance(reply, str) or not reply:
        return _text(HTTPStatus.INTERNAL_SERVER_ERROR, "Sorry, could not get invoice", None)
    page = invoice_page(site.admission_cost, _render_qr(site, reply), reply, pubkey)
    return _text(HTTPStatus.OK, page, _HTML)


def _account(query: str | None, site: SiteOptions) -> WebResponse:
    if not site.pay_to_relay_enabled:
        return _text(401, "This relay is not paid")
    pubkey = get_pubkey(query)
    if pubkey is None:
        return _redirect_to_join()
    try:
        key_hex = _parse_public_key(pubkey)
    except ValueError:
        return _text(401, _INVALID_KEY)
    if site.check_account is not None:
        try:
            site.check_account(pubkey)
        except Exception as err:
            log.warning("Could not check account: %s", err)
    admitted = _lookup_admission(site, key_hex)
    return _text(HTTPStatus.OK, account_page(pubkey, admitted), _HTML)


def _lnbits(body: bytes, site: SiteOptions) -> WebResponse:
    try:
        callback = json.loads(body)
        payment_hash = callback["payment_hash"]
        if not isinstance(payment_hash, str):
            raise TypeError("payment_hash is not a string")
    except (ValueError, KeyError, TypeError):
        return _text(HTTPStatus.BAD_REQUEST, "Invalid callback", None)
    log.debug("LNBits callback: %r", callback)
    if site.on_invoice_paid is None:
        log.warning("Could not send invoice update: no payment handler")
        return _text(HTTPStatus.INTERNAL_SERVER_ERROR, "Error processing callback", None)
    try:
        site.on_invoice_paid(payment_hash)
    except Exception as err:
        log.warning("Could not send invoice update: %s", err)
        return _text(HTTPStatus.INTERNAL_SERVER_ERROR, "Error processing callback", None)
    return _text(HTTPStatus.OK, "ok", None)


def handle_request(
    path: str,
    query: str | None,
    headers: HeadersLike,
    site: SiteOptions,
    registry: Registry,
    favicon: bytes | None,
) -> WebResponse:
    """Answer one HTTP request for ``path``."""
    header_map = _header_map(headers)
    if "upgrade" in header_map:
        if path == "/":
            return _websocket_handshake(header_map)
        return _text(HTTPStatus.NOT_FOUND, "Nothing here.", None)
    if path == "/":
        return _root(header_map, site)
    if path == "/metrics":
        return _text(HTTPStatus.OK, registry.render())
    if path == "/favicon.ico":
        if favicon is None:
            return WebResponse(HTTPStatus.NOT_FOUND)
        log.info("returning favicon")
        return WebResponse(
            HTTPStatus.OK,
            [("Content-Type", "image/x-icon"), ("Cache-Control", _FAVICON_CACHE)],
            favicon,
        )
    if path == "/lnbits":
        return _lnbits(b"", site)
    if path == "/terms":
        return _text(HTTPStatus.OK, site.terms_message)
    if path == "/join":
        if not site.sign_ups:
            return _text(401, _NOT_ALLOWED_TO_JOIN)
        return _text(HTTPStatus.OK, join_page(), _HTML)
    if path == "/invoice":
        return _invoice(query, site)
    if path == "/account":
        return _account(query, site)
    return _text(HTTPStatus.NOT_FOUND, "Nothing here.", None)


def _environ_headers(environ: Mapping[str, Any]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            headers[key[5:].replace("_", "-").lower()] = value
        elif key in ("CONTENT_TYPE", "CONTENT_LENGTH") and value:
            headers[key.replace("_", "-").lower()] = value
    return headers


def _read_body(environ: Mapping[str, Any]) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    stream = environ.get("wsgi.input")
    if stream is None or length <= 0:
        return b""
    return stream.read(length)


def make_wsgi_app(
    site: SiteOptions, registry: Registry, favicon: bytes | None
) -> Callable[[dict[str, Any], Callable[..., Any]], list[bytes]]:
    """A WSGI application serving the relay's HTTP endpoints."""

    def app(environ: dict[str, Any], start_response: Callable[..., Any]) -> list[bytes]:
        path = environ.get("PATH_INFO") or "/"
        query = environ.get("QUERY_STRING")
        headers = _environ_headers(environ)
        if path == "/lnbits" and "upgrade" not in headers:
            response = _lnbits(_read_body(environ), site)
        else:
            response = handle_request(path, query, headers, site, registry, favicon)
        if response.status == HTTPStatus.SWITCHING_PROTOCOLS:
            response = _text(
                HTTPStatus.BAD_REQUEST,
                "Failed to create websocket: connection upgrade is not available",
                None,
            )
        status = HTTPStatus(response.status)
        out_headers = list(response.headers)
        out_headers.append(("Content-Length", str(len(response.body))))
        start_response(f"{status.value} {status.phrase}", out_headers)
        return [response.body]

    return app