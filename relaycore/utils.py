"""Common helpers: time, hex checks, NIP-19 decoding and URL hosts."""

from __future__ import annotations

import time
from urllib.parse import urlsplit

_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_CHARSET_REV = {c: i for i, c in enumerate(_CHARSET)}
_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_BECH32_CONST = 1
_BECH32M_CONST = 0x2BC830A3
_CHECKSUM_LENGTH = 6
_MAX_HRP_LENGTH = 83
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_LOWER_HEX_DIGITS = frozenset("0123456789abcdef")


class Bech32Error(ValueError):
    """Raised when a bech32 string cannot be decoded."""


def unix_time() -> int:
    """Seconds since 1970."""
    return max(int(time.time()), 0)


def is_hex(s: str) -> bool:
    """Whether the string holds only hex characters."""
    return all(c in _HEX_DIGITS for c in s)


def is_nip19(s: str) -> bool:
    """Whether the string looks like a NIP-19 key or note identifier."""
    return s.startswith("npub") or s.startswith("note")


def is_lower_hex(s: str) -> bool:
    """Whether the string holds only lower-case hex characters."""
    return all(c in _LOWER_HEX_DIGITS for c in s)


def _polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for bit, gen in enumerate(_GENERATOR):
            if (top >> bit) & 1:
                chk ^= gen
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


class _CaseTracker:
    def __init__(self) -> None:
        self.case: str | None = None

    def see(self, c: str) -> None:
        if c.islower():
            current = "lower"
        elif c.isupper():
            current = "upper"
        else:
            return
        if self.case is None:
            self.case = current
        elif self.case != current:
            raise Bech32Error("mixed case")


def _bech32_decode(s: str) -> tuple[str, list[int]]:
    """Split and verify a bech32 or bech32m string; return hrp and 5-bit data."""
    sep = s.rfind("1")
    if sep < 0:
        raise Bech32Error("missing human-readable separator")
    raw_hrp, raw_data = s[:sep], s[sep + 1:]
    if not raw_hrp or len(raw_hrp) > _MAX_HRP_LENGTH:
        raise Bech32Error("invalid length")
    tracker = _CaseTracker()
    for c in raw_hrp:
        if not c.isascii() or not 33 <= ord(c) <= 126:
            raise Bech32Error(f"invalid character ({c!r})")
        tracker.see(c)
    data: list[int] = []
    for c in raw_data:
        if not c.isascii():
            raise Bech32Error(f"invalid character ({c!r})")
        tracker.see(c)
        value = _CHARSET_REV.get(c.lower())
        if value is None:
            raise Bech32Error(f"invalid character ({c!r})")
        data.append(value)
    if len(data) < _CHECKSUM_LENGTH:
        raise Bech32Error("invalid length")
    hrp = raw_hrp.lower()
    if _polymod(_hrp_expand(hrp) + data) not in (_BECH32_CONST, _BECH32M_CONST):
        raise Bech32Error("invalid checksum")
    return hrp, data[:-_CHECKSUM_LENGTH]


def _from_base32(data: list[int]) -> bytes:
    out = bytearray()
    acc = 0
    bits = 0
    for value in data:
        acc = (acc << 5) | value
        bits += 5
        while bits >= 8:
            bits -= 8
            out.append((acc >> bits) & 0xFF)
        acc &= (1 << bits) - 1
    if bits >= 5 or acc != 0:
        raise Bech32Error("invalid padding")
    return bytes(out)


def nip19_to_hex(s: str) -> str:
    """Decode a bech32 (NIP-19) string into lower-case hex of its payload."""
    _hrp, data = _bech32_decode(s)
    return _from_base32(data).hex()


def host_str(url: str) -> str | None:
    """Return the host part of an absolute URL, or ``None``."""
    try:
        parts = urlsplit(url)
        if not parts.scheme:
            return None
        host = parts.hostname
    except ValueError:
        return None
    if not host:
        return None
    if ":" in host:
        return f"[{host}]"
    return host