"""Hashers used for fingerprints and email digests."""

import hashlib
from typing import Protocol

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def djb2(text: str) -> str:
    """Non-cryptographic djb2 hash (32-bit), base36 encoded."""
    value = 5381
    for char in text:
        value = ((value << 5) + value + ord(char)) & 0xFFFFFFFF
    return to_base36(value)


class Hasher(Protocol):
    def digest(self, text: str) -> str:
        ...


class Sha256Hasher:
    def digest(self, text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()


class Djb2Hasher:
    def digest(self, text: str) -> str:
        return djb2(text)
