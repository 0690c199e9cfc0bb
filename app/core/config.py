import os
from decimal import Decimal
from typing import Dict

# Used for both cost and bill when an activity has never had a rate row.
DEFAULT_RATE_FALLBACK = 11000

DEFAULT_MARKUP_RATES: Dict[str, Decimal] = {
    "materials": Decimal("1.2"),
    "outsourcing": Decimal("1.2"),
    "shipping": Decimal("1.2"),
}


def get_default_rate() -> int:
    raw = os.getenv("DEFAULT_RATE")
    if not raw:
        return DEFAULT_RATE_FALLBACK
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError("DEFAULT_RATE must be an integer") from exc
    if value < 0:
        raise ValueError("DEFAULT_RATE must be non-negative")
    return value


def get_env() -> str:
    return os.getenv("ENV", "dev").lower()
