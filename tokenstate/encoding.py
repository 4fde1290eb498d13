"""Text encodings for identifiers and addresses.

Identifiers are shown as CB58 (base58 with a four byte SHA-256 checksum).
Addresses are public keys in bech32 form under a human-readable part.
"""

from __future__ import annotations

import hashlib

ID_LEN = 32
PUBLIC_KEY_LEN = 32

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX = {ch: i for i, ch in enumerate(_BASE58_ALPHABET)}
_CHECKSUM_LEN = 4

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_INDEX = {ch: i for i, ch in enumerate(_BECH32_CHARSET)}
_BECH32_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_BECH32_MAX_LEN = 90


def _base58_encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, rem = divmod(number, 58)
        digits.append(_BASE58_ALPHABET[rem])
    leading = len(data) - len(data.lstrip(b"\x00"))
    return "1" * leading + "".join(reversed(digits))


def _base58_decode(text: str) -> bytes:
    number = 0
    for ch in text:
        try:
            number = number * 58 + _BASE58_INDEX[ch]
        except KeyError:
            raise ValueError(f"invalid base58 character {ch!r}") from None
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    leading = len(text) - len(text.lstrip("1"))
    return b"\x00" * leading + body


def _checksum(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()[-_CHECKSUM_LEN:]


def id_to_string(raw_id: bytes) -> str:
    """Render a 32-byte identifier as CB58 text."""
    raw_id = bytes(raw_id)
    if len(raw_id) != ID_LEN:
        raise ValueError(f"identifier must be {ID_LEN} bytes, got {len(raw_id)}")
    return _base58_encode(raw_id + _checksum(raw_id))


def id_from_string(text: str) -> bytes:
    """Parse CB58 text back into a 32-byte identifier."""
    decoded = _base58_decode(text)
    if len(decoded) < _CHECKSUM_LEN:
        raise ValueError("input string is smaller than the checksum size")
    payload, check = decoded[:-_CHECKSUM_LEN], decoded[-_CHECKSUM_LEN:]
    if _checksum(payload) != check:
        raise ValueError("invalid input checksum")
    if len(payload) != ID_LEN:
        raise ValueError(f"identifier must be {ID_LEN} bytes, got {len(payload)}")
    return payload


def _polymod(values) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for bit, gen in enumerate(_BECH32_GENERATOR):
            if (top >> bit) & 1:
                chk ^= gen
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data, from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out = []
    maxv = (1 << to_bits) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise ValueError("invalid data value for bit conversion")
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & maxv)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & maxv):
        raise ValueError("invalid padding in bech32 data")
    return out


def _bech32_encode(hrp: str, data: bytes) -> str:
    values = _convert_bits(data, 8, 5, True)
    polymod = _polymod(_hrp_expand(hrp) + values + [0] * 6) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_BECH32_CHARSET[v] for v in values + checksum)


def _bech32_decode(text: str) -> tuple[str, bytes]:
    if len(text) < 8 or len(text) > _BECH32_MAX_LEN:
        raise ValueError(f"invalid bech32 string length {len(text)}")
    if any(ord(ch) < 33 or ord(ch) > 126 for ch in text):
        raise ValueError("invalid character in bech32 string")
    if text.lower() != text and text.upper() != text:
        raise ValueError("bech32 string is mixed case")
    text = text.lower()
    sep = text.rfind("1")
    if sep < 1 or sep + 7 > len(text):
        raise ValueError("invalid bech32 separator position")
    hrp, data_part = text[:sep], text[sep + 1 :]
    try:
        values = [_BECH32_INDEX[ch] for ch in data_part]
    except KeyError as exc:
        raise ValueError(f"invalid bech32 character {exc.args[0]!r}") from None
    if _polymod(_hrp_expand(hrp) + values) != 1:
        raise ValueError("invalid bech32 checksum")
    return hrp, bytes(_convert_bits(values[:-6], 5, 8, False))


class AddressCodec:
    """Formats and parses public-key addresses under one human-readable part."""

    def __init__(self, hrp: str) -> None:
        if not hrp:
            raise ValueError("human-readable part must not be empty")
        self.hrp = hrp.lower()

    def address(self, public_key: bytes) -> str:
        public_key = bytes(public_key)
        if len(public_key) != PUBLIC_KEY_LEN:
            raise ValueError(
                f"public key must be {PUBLIC_KEY_LEN} bytes, got {len(public_key)}"
            )
        return _bech32_encode(self.hrp, public_key)

    def parse_address(self, text: str) -> bytes:
        hrp, payload = _bech32_decode(text)
        if hrp != self.hrp:
            raise ValueError(f"expected hrp {self.hrp!r}, got {hrp!r}")
        if len(payload) != PUBLIC_KEY_LEN:
            raise ValueError(
                f"public key must be {PUBLIC_KEY_LEN} bytes, got {len(payload)}"
            )
        return payload