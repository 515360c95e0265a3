"""Text artifacts rendered from the generated offers: ZOPA, BATNA, playbook, memo and draft LOI.

Everything here is templated from the computed figures; nothing is sent outside
the organisation, and the LOI is always stamped as an internal draft.
"""
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from dealdesk.models.negotiation import BATNA, NegotiationInputs, OfferScenario, Playbook
from dealdesk.negotiation.scenarios import (
    ScenarioArchetype, find_offer, resolve_deal_terms, round_half_up,
)
from dealdesk.negotiation.workflow import collect_risk_flags

BUYER_BATNA = "Walk away and pursue alternative targets. Estimated search cost: 3-6 months, $500K in advisory fees."
SELLER_BATNA = "Continue operating independently or pursue other suitors. Risk of market timing if delayed."

DRAFT_BANNER = (
    "════════════════════════════════════════════\n"
    "⚠️  INTERNAL DRAFT — NOT A LEGAL OFFER  ⚠️\n"
    "════════════════════════════════════════════"
)


def _one_decimal(value: float) -> str:
    # Rounds the exact binary value, ties upward
    return str(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def format_currency(value: float) -> str:
    if value >= 1_000_000_000:
        return f"${_one_decimal(value / 1_000_000_000)}B"
    if value >= 1_000_000:
        return f"${_one_decimal(value / 1_000_000)}M"
    return f"${value:,.0f}"


def _company_label(inputs: NegotiationInputs) -> str:
    return inputs.company_name or inputs.target_company or "Target Company"


def generate_zopa(
    inputs: NegotiationInputs,
    fair_value_low: float | None = None,
    fair_value_high: float | None = None,
) -> tuple[int, int]:
    terms = resolve_deal_terms(inputs)
    zopa_low = fair_value_low or terms.price_low
    zopa_high = min(terms.seller_ask * 1.05, fair_value_high or terms.seller_ask)
    return round_half_up(zopa_low), round_half_up(zopa_high)


def generate_batna(inputs: NegotiationInputs) -> BATNA:
    return BATNA(buyer=BUYER_BATNA, seller=SELLER_BATNA)


def generate_playbook(inputs: NegotiationInputs, offers: list[OfferScenario]) -> Playbook:
    seller_ask = resolve_deal_terms(inputs).seller_ask
    opening = offers[0]
    balanced = find_offer(offers, ScenarioArchetype.BALANCED)

    return Playbook(
        opening_anchor=(
            f"Open at {format_currency(opening.equity_value)} "
            f"({round_half_up(opening.equity_value / seller_ask * 100)}% of ask) to establish negotiating room."
        ),
        expected_reactions=[
            "Seller likely to counter at or near ask price",
            "Expect pushback on earnout structure and escrow percentage",
            "Working capital adjustment methodology will be contested",
        ],
        concessions_ladder=[
            f"Step 1: Move to {format_currency(balanced.equity_value)} if seller shows flexibility",
            f"Step 2: Increase cash at close to {format_currency(balanced.cash_at_close)}",
            f"Step 3: Reduce escrow to {balanced.escrow_pct - 2:g}% as final concession",
            "Step 4: Agree to accelerated close timeline if at ceiling price",
        ],
        key_talking_points=[
            "Emphasize certainty of close and track record",
            "Highlight synergy opportunities post-close",
            "Reference comparable transaction multiples",
            "Discuss earnout structure as alignment mechanism",
        ],
    )


def generate_memo(inputs: NegotiationInputs, offers: list[OfferScenario], as_of: date) -> str:
    terms = resolve_deal_terms(inputs)
    balanced = find_offer(offers, ScenarioArchetype.BALANCED)
    competition = (
        "Yes - proceed with urgency" if terms.has_competition
        else "Unknown/None - leverage for concessions"
    )
    flags = "\n".join(f"- {flag}" for flag in collect_risk_flags(offers))

    return (
        "**Internal Negotiation Memo**\n\n"
        f"**Target:** {_company_label(inputs)}\n"
        f"**Date:** {as_of.isoformat()}\n\n"
        "**Recommended Approach:**\n"
        f"We recommend opening with the Aggressive scenario at {format_currency(offers[0].equity_value)} "
        f"to establish negotiating room, with authority to move to the Balanced scenario at "
        f"{format_currency(balanced.equity_value)}.\n\n"
        "**Key Considerations:**\n"
        f"- Seller asking price: {format_currency(terms.seller_ask)}\n"
        f"- Our acceptable range: {format_currency(terms.price_low)} - {format_currency(terms.price_high)}\n"
        f"- Competition: {competition}\n\n"
        "**Risk Flags:**\n"
        f"{flags}\n"
    )


def generate_draft_loi(inputs: NegotiationInputs, offers: list[OfferScenario], as_of: date) -> str:
    company = _company_label(inputs)
    balanced = find_offer(offers, ScenarioArchetype.BALANCED)
    earnout = balanced.earnout_terms

    return (
        f"{DRAFT_BANNER}\n\n"
        "LETTER OF INTENT\n\n"
        f"Date: {as_of.isoformat()}\n\n"
        f"Re: Proposed Acquisition of {company}\n\n"
        "Dear [Seller Representative],\n\n"
        f"We are pleased to submit this non-binding Letter of Intent for the proposed acquisition of "
        f"{company} (the \"Company\").\n\n"
        "1. PURCHASE PRICE\n"
        f"   Total Enterprise Value: {format_currency(balanced.equity_value)}\n\n"
        "2. CONSIDERATION\n"
        f"   - Cash at Closing: {format_currency(balanced.cash_at_close)}\n"
        f"   - Earnout: Up to {format_currency(earnout.cap)} based on {earnout.metric} targets over {earnout.period}\n\n"
        "3. ESCROW\n"
        f"   {balanced.escrow_pct:g}% of purchase price held for 18 months for indemnification claims\n\n"
        "4. WORKING CAPITAL\n"
        f"   Adjustment: {balanced.working_capital}\n\n"
        "5. DUE DILIGENCE\n"
        "   45-day exclusivity period for confirmatory due diligence\n\n"
        "6. CLOSING\n"
        f"   Target closing within {balanced.closing_days} days of signing definitive agreement\n\n"
        "This letter is non-binding except for confidentiality and exclusivity provisions.\n\n"
        f"{DRAFT_BANNER}\n"
    )
