def _price_delta(price_ratio: float) -> float:
    if price_ratio >= 1.0:
        return 0.20
    if price_ratio >= 0.95:
        return 0.15
    if price_ratio >= 0.90:
        return 0.10
    if price_ratio >= 0.85:
        return 0.05
    return -0.10


def _cash_delta(cash_percent: float) -> float:
    if cash_percent >= 80:
        return 0.10
    if cash_percent >= 60:
        return 0.05
    return -0.05


def _escrow_delta(escrow_percent: float) -> float:
    # Lower escrow is better for the seller
    if escrow_percent <= 5:
        return 0.05
    if escrow_percent <= 10:
        return 0.02
    return -0.05


def _closing_delta(closing_days: int) -> float:
    if closing_days <= 30:
        return 0.08
    if closing_days <= 60:
        return 0.04
    if closing_days <= 90:
        return 0.02
    return -0.05


def calculate_acceptance_probability(
    offer_price: float,
    seller_ask: float,
    cash_percent: float,
    escrow_percent: float,
    closing_days: int,
    has_competition: bool,
    certainty_priority: float,
) -> float:
    """Hand-tuned linear score of how likely the seller is to accept an offer, clamped to [0, 1]."""
    price_ratio = offer_price / seller_ask if seller_ask > 0 else 0.0

    score = 0.5
    score += _price_delta(price_ratio)
    score += _cash_delta(cash_percent)
    score += _escrow_delta(escrow_percent)
    score += _closing_delta(closing_days)
    if has_competition:
        score -= 0.05
    score += (certainty_priority / 10) * 0.05

    return max(0.0, min(1.0, score))
