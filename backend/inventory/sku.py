"""
SKU generation for products created without one.

Format: PREFIX-STAMP
  PREFIX  first 4 of the upper-cased name restricted to [A-Z0-9], padded with X
  STAMP   last 6 characters of the millisecond timestamp in base 36
"""

import re
import time

_BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_NON_ALNUM = re.compile(r"[^A-Z0-9]")

SKU_PATTERN = re.compile(r"^[A-Z0-9]{4}-[A-Z0-9]{6}$")


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def sku_prefix(name: str | None) -> str:
    return _NON_ALNUM.sub("", (name or "").upper())[:4].ljust(4, "X")


def generate_sku(name: str | None, timestamp_ms: int | None = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    stamp = to_base36(timestamp_ms)[-6:].rjust(6, "0")
    return f"{sku_prefix(name)}-{stamp}"
