import math
from decimal import ROUND_HALF_UP, Decimal

from app.core.config import settings


def credits_for_tokens(tokens_in: int, tokens_out: int, per_1k: float | None = None) -> Decimal:
    rate = Decimal(str(settings.CREDITS_PER_1K_TOKENS if per_1k is None else per_1k))
    total = max(0, int(tokens_in or 0)) + max(0, int(tokens_out or 0))
    return (Decimal(total) / Decimal(1000) * rate).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text or "") / 4)
