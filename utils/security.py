"""Identifier and one-time-code generation."""
import secrets
import string
import threading
import time

BASE36_ALPHABET = string.digits + string.ascii_uppercase

_id_lock = threading.Lock()
_last_id_millis = 0


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding expects a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def _next_id_millis() -> int:
    """Epoch milliseconds, bumped so no two ids from this process share a timestamp."""
    global _last_id_millis
    with _id_lock:
        now = int(time.time() * 1000)
        _last_id_millis = max(now, _last_id_millis + 1)
        return _last_id_millis


def generate_complaint_id(prefix: str = "CIV") -> str:
    """Human-shareable tracking token: PREFIX-TIMESTAMP36-RAND4."""
    random_part = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(4))
    return f"{prefix}-{to_base36(_next_id_millis())}-{random_part}"


def generate_otp(length: int = 4) -> str:
    digits = "0123456789"
    return "".join(secrets.choice(digits) for _ in range(length))


def generate_citizen_id() -> str:
    return f"CIT-{1000 + secrets.randbelow(9000)}"


def codes_match(expected: str, candidate: str) -> bool:
    return secrets.compare_digest(str(expected).encode("utf-8"), str(candidate).encode("utf-8"))
