import math
from dataclasses import dataclass
from enum import Enum

from dealdesk.models.negotiation import EarnoutTerms, NegotiationInputs, OfferScenario
from dealdesk.negotiation.scoring import calculate_acceptance_probability

DEFAULT_SELLER_ASK = 100_000_000
DEFAULT_RANGE_LOW_FACTOR = 0.85
DEFAULT_RANGE_HIGH_FACTOR = 1.05
DEFAULT_EARNOUT_METRIC = "EBITDA"
DEFAULT_EARNOUT_PERIOD = "2y"
DEFAULT_WORKING_CAPITAL = "peg + true-up"

FLAG_BELOW_FAIR_VALUE = "Below fair value floor"
FLAG_EARNOUT_DISPUTE = "Earnout dispute risk"
FLAG_HIGH_ESCROW = "High escrow may deter seller"
FLAG_LOW_ACCEPTANCE = "LOW acceptance probability"


class ScenarioArchetype(str, Enum):
    AGGRESSIVE = "Aggressive"
    BALANCED = "Balanced"
    DEFENSIVE = "Defensive"
    MAXIMUM_CERTAINTY = "Maximum Certainty"


@dataclass(frozen=True)
class ArchetypeParams:
    cash_percent: float
    earnout_cap_percent: float
    escrow_pct: float
    closing_days: int


ARCHETYPE_PARAMS: dict[ScenarioArchetype, ArchetypeParams] = {
    ScenarioArchetype.AGGRESSIVE: ArchetypeParams(cash_percent=60, earnout_cap_percent=25, escrow_pct=15, closing_days=45),
    ScenarioArchetype.BALANCED: ArchetypeParams(cash_percent=75, earnout_cap_percent=15, escrow_pct=10, closing_days=60),
    ScenarioArchetype.DEFENSIVE: ArchetypeParams(cash_percent=85, earnout_cap_percent=10, escrow_pct=7, closing_days=75),
    ScenarioArchetype.MAXIMUM_CERTAINTY: ArchetypeParams(cash_percent=95, earnout_cap_percent=5, escrow_pct=5, closing_days=90),
}


@dataclass
class DealTerms:
    """Inputs with defaults applied, plus the value band the offers are priced against."""
    seller_ask: float
    price_low: float
    price_high: float
    max_cash: float
    has_competition: bool
    certainty_priority: float
    value_low: float
    value_high: float


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def resolve_deal_terms(
    inputs: NegotiationInputs,
    fair_value_low: float | None = None,
    fair_value_high: float | None = None,
) -> DealTerms:
    seller_ask = inputs.seller_ask_price or DEFAULT_SELLER_ASK
    if inputs.acceptable_price_range:
        price_low, price_high = inputs.acceptable_price_range
    else:
        price_low, price_high = seller_ask * DEFAULT_RANGE_LOW_FACTOR, seller_ask * DEFAULT_RANGE_HIGH_FACTOR

    return DealTerms(
        seller_ask=seller_ask,
        price_low=price_low,
        price_high=price_high,
        max_cash=inputs.maximum_cash_at_close or seller_ask,
        has_competition=inputs.competing_bidders == "yes",
        certainty_priority=inputs.certainty_priority,
        value_low=fair_value_low or price_low,
        value_high=fair_value_high or price_high,
    )


def archetype_equity_value(archetype: ScenarioArchetype, terms: DealTerms) -> int:
    if archetype is ScenarioArchetype.AGGRESSIVE:
        return round_half_up(terms.value_low * 0.92)
    if archetype is ScenarioArchetype.BALANCED:
        return round_half_up((terms.value_low + terms.value_high) / 2)
    if archetype is ScenarioArchetype.DEFENSIVE:
        return round_half_up(terms.value_high * 0.98)
    return round_half_up(terms.seller_ask * 1.02)


def risk_flags_for(
    equity_value: float,
    params: ArchetypeParams,
    accept_prob: float,
    value_low: float,
) -> list[str]:
    flags: list[str] = []
    if equity_value < value_low * 0.9:
        flags.append(FLAG_BELOW_FAIR_VALUE)
    if params.earnout_cap_percent > 20:
        flags.append(FLAG_EARNOUT_DISPUTE)
    if params.escrow_pct > 12:
        flags.append(FLAG_HIGH_ESCROW)
    if accept_prob < 0.4:
        flags.append(FLAG_LOW_ACCEPTANCE)
    return flags


def generate_offer_scenarios(
    inputs: NegotiationInputs,
    fair_value_low: float | None = None,
    fair_value_high: float | None = None,
) -> list[OfferScenario]:
    """Price the four fixed archetypes against the fair-value band (or the buyer's acceptable range)."""
    terms = resolve_deal_terms(inputs, fair_value_low, fair_value_high)
    earnout_prefs = inputs.earnout_preferences

    offers: list[OfferScenario] = []
    for archetype, params in ARCHETYPE_PARAMS.items():
        equity_value = archetype_equity_value(archetype, terms)
        cash_at_close = min(terms.max_cash, round_half_up(equity_value * params.cash_percent / 100))
        earnout_cap = round_half_up(equity_value * params.earnout_cap_percent / 100)

        accept_prob = calculate_acceptance_probability(
            offer_price=equity_value,
            seller_ask=terms.seller_ask,
            cash_percent=params.cash_percent,
            escrow_percent=params.escrow_pct,
            closing_days=params.closing_days,
            has_competition=terms.has_competition,
            certainty_priority=terms.certainty_priority,
        )

        pct_of_ask = round_half_up(equity_value / terms.seller_ask * 100)
        offers.append(OfferScenario(
            label=archetype.value,
            equity_value=equity_value,
            cash_at_close=cash_at_close,
            earnout_terms=EarnoutTerms(
                metric=(earnout_prefs.metric if earnout_prefs else None) or DEFAULT_EARNOUT_METRIC,
                period=(earnout_prefs.period if earnout_prefs else None) or DEFAULT_EARNOUT_PERIOD,
                cap=earnout_cap,
            ),
            escrow_pct=params.escrow_pct,
            working_capital=inputs.working_capital_adjustment or DEFAULT_WORKING_CAPITAL,
            accept_prob=round_half_up(accept_prob * 100) / 100,
            rationale=f"{archetype.value} offer at {pct_of_ask}% of ask with {params.cash_percent:g}% cash.",
            risk_flags=risk_flags_for(equity_value, params, accept_prob, terms.value_low),
            closing_days=params.closing_days,
        ))

    return offers


def find_offer(offers: list[OfferScenario], archetype: ScenarioArchetype) -> OfferScenario:
    for offer in offers:
        if offer.label == archetype.value:
            return offer
    raise KeyError(f"No {archetype.value} scenario among generated offers")
