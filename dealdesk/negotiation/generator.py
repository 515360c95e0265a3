import logging
from datetime import date

from dealdesk.models.negotiation import NegotiationInputs, NegotiationResults
from dealdesk.negotiation.documents import (
    generate_batna, generate_draft_loi, generate_memo, generate_playbook, generate_zopa,
)
from dealdesk.negotiation.scenarios import generate_offer_scenarios

logger = logging.getLogger(__name__)


def generate_negotiation(
    inputs: NegotiationInputs,
    fair_value_low: float | None = None,
    fair_value_high: float | None = None,
    as_of: date | None = None,
) -> NegotiationResults:
    """Build the four offers and every artifact derived from them. Pure apart from the date stamp."""
    as_of = as_of or date.today()

    offers = generate_offer_scenarios(inputs, fair_value_low, fair_value_high)
    results = NegotiationResults(
        offers=offers,
        zopa=generate_zopa(inputs, fair_value_low, fair_value_high),
        batna=generate_batna(inputs),
        playbook=generate_playbook(inputs, offers),
        memo=generate_memo(inputs, offers, as_of),
        draft_loi=generate_draft_loi(inputs, offers, as_of),
    )

    logger.info(
        f"Generated {len(offers)} offers for '{inputs.target_company}': "
        + ", ".join(f"{o.label}=${o.equity_value:,.0f} (p={o.accept_prob:.2f})" for o in offers)
    )
    return results
