"""Best-effort оценка стоимости по `pricing.json` (USD за 1K токенов)."""

import json
import re
from decimal import Decimal
from functools import lru_cache
from importlib import resources

DEFAULT_PRICE_PER_1K = Decimal("0.01")


@lru_cache(maxsize=1)
def load_pricing() -> dict:
    text = (
        resources.files("ai_completions").joinpath("data/pricing.json").read_text(encoding="utf-8")
    )
    return json.loads(text)


def price_for_model(model: str, pricing: dict) -> Decimal:
    """Цена за 1K токенов; неизвестная модель получает дефолтную ставку."""
    defaults = pricing.get("defaults") or {}
    default_price = Decimal(str(defaults.get("per_1k", DEFAULT_PRICE_PER_1K)))

    for row in pricing.get("models") or []:
        if not isinstance(row, dict):
            continue
        pat = row.get("match")
        if not isinstance(pat, str):
            continue
        if re.fullmatch(pat, model or ""):
            return Decimal(str(row.get("per_1k", default_price)))

    return default_price


def estimate_cost(total_tokens: int | None, model: str, pricing: dict | None = None) -> Decimal:
    """`tokens / 1000 * price(model)`; без usage стоимость нулевая."""
    if not total_tokens:
        return Decimal(0)
    table = pricing if pricing is not None else load_pricing()
    return Decimal(total_tokens) / Decimal(1000) * price_for_model(model, table)
