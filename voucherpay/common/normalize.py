"""Input normalizers for prices, phone numbers, e-mails and return URLs."""

import math
import re
from urllib.parse import urlsplit

_SPACES = re.compile(r"[\s\u00a0\u202f\u2009']+")
_CURRENCY_SUFFIX = re.compile(r"(₽|руб\.?|р\.?|rub)$", re.IGNORECASE)
_NUMERIC = re.compile(r"[0-9.,]+")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_price(raw) -> int:
    """Parse a user/catalog price into whole major currency units.

    Accepts thousands separators (space, NBSP, narrow NBSP, apostrophe, or a
    dot/comma followed by exactly three digits) and a comma or dot decimal
    part that must be zero. Returns 0 for anything unparseable, negative or
    fractional so callers can apply a single positivity check.
    """

    if raw is None or isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return raw if raw > 0 else 0
    if isinstance(raw, float):
        if not math.isfinite(raw) or not raw.is_integer() or raw <= 0:
            return 0
        return int(raw)

    text = _SPACES.sub("", str(raw))
    text = _CURRENCY_SUFFIX.sub("", text)
    if not text or not _NUMERIC.fullmatch(text):
        return 0

    last_comma, last_dot = text.rfind(","), text.rfind(".")
    decimal_sep = thousands_sep = None
    if last_comma >= 0 and last_dot >= 0:
        decimal_sep = "," if last_comma > last_dot else "."
        thousands_sep = "." if decimal_sep == "," else ","
    elif last_comma >= 0 or last_dot >= 0:
        sep = "," if last_comma >= 0 else "."
        tail = len(text) - text.rfind(sep) - 1
        if text.count(sep) > 1 or tail == 3:
            thousands_sep = sep
        else:
            decimal_sep = sep

    integer, fraction = text, ""
    if decimal_sep:
        integer, _, fraction = text.rpartition(decimal_sep)
        if decimal_sep in integer:
            return 0
    if thousands_sep:
        integer = integer.replace(thousands_sep, "")

    if not integer.isdigit() or (fraction and not fraction.isdigit()):
        return 0
    if fraction and int(fraction) != 0:
        return 0
    value = int(integer)
    return value if value > 0 else 0


def normalize_phone(raw: str) -> str:
    """Digits-only phone, with Russian 8XXXXXXXXXX / 10-digit forms mapped to 7XXXXXXXXXX."""

    digits = re.sub(r"\D+", "", raw or "")
    if len(digits) == 11 and digits[0] in "78":
        return "7" + digits[1:]
    if len(digits) == 10:
        return "7" + digits
    return digits


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL.match(value or ""))


def safe_back_url(candidate: str | None, public_base_url: str, allowed_hosts: list[str], default: str) -> str:
    """Return `candidate` if it stays on a trusted host, else `default`."""

    if not candidate:
        return default
    candidate = candidate.strip()
    if candidate.startswith("/") and not candidate.startswith("//") and "\\" not in candidate:
        return candidate
    parts = urlsplit(candidate)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return default
    trusted = {host.lower() for host in allowed_hosts}
    public_host = urlsplit(public_base_url).hostname
    if public_host:
        trusted.add(public_host.lower())
    return candidate if parts.hostname.lower() in trusted else default
