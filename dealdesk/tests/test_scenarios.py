import pytest
from dealdesk.models.negotiation import EarnoutPreferences, NegotiationInputs
from dealdesk.negotiation.scenarios import (
    FLAG_BELOW_FAIR_VALUE, FLAG_EARNOUT_DISPUTE, FLAG_HIGH_ESCROW, FLAG_LOW_ACCEPTANCE,
    ScenarioArchetype, find_offer, generate_offer_scenarios, resolve_deal_terms,
)
from dealdesk.negotiation.workflow import requires_approval


@pytest.fixture
def base_inputs():
    return NegotiationInputs(target_company="Acme Corp", seller_ask_price=100_000_000)


def test_defaults_resolved_from_ask():
    terms = resolve_deal_terms(NegotiationInputs(target_company="Acme"))
    assert terms.seller_ask == 100_000_000
    assert terms.price_low == pytest.approx(85_000_000)
    assert terms.price_high == pytest.approx(105_000_000)
    assert terms.max_cash == 100_000_000
    assert terms.has_competition is False
    assert terms.certainty_priority == 5


def test_four_offers_in_fixed_order(base_inputs):
    offers = generate_offer_scenarios(base_inputs)
    assert [o.label for o in offers] == ["Aggressive", "Balanced", "Defensive", "Maximum Certainty"]
    assert [o.closing_days for o in offers] == [45, 60, 75, 90]
    assert [o.escrow_pct for o in offers] == [15, 10, 7, 5]


def test_hundred_million_ask_example(base_inputs):
    aggressive, balanced, defensive, certainty = generate_offer_scenarios(base_inputs)

    assert aggressive.equity_value == 78_200_000
    assert aggressive.cash_at_close == 46_920_000
    assert aggressive.earnout_terms.cap == 19_550_000
    assert aggressive.accept_prob == 0.47
    assert aggressive.risk_flags == [FLAG_EARNOUT_DISPUTE, FLAG_HIGH_ESCROW]

    assert balanced.equity_value == 95_000_000
    assert balanced.cash_at_close == 71_250_000
    assert balanced.earnout_terms.cap == 14_250_000
    assert balanced.accept_prob == 0.79
    assert balanced.rationale == "Balanced offer at 95% of ask with 75% cash."
    assert balanced.risk_flags == []

    assert defensive.equity_value == 102_900_000
    assert defensive.cash_at_close == 87_465_000
    assert defensive.accept_prob == 0.87

    assert certainty.equity_value == 102_000_000
    assert certainty.cash_at_close == 96_900_000
    assert certainty.accept_prob == 0.9
    assert certainty.rationale == "Maximum Certainty offer at 102% of ask with 95% cash."


@pytest.mark.parametrize("competing,certainty,expected", [
    ("unknown", 5, [0.47, 0.79, 0.87, 0.9]),
    ("yes", 7, [0.43, 0.75, 0.83, 0.86]),
])
def test_accept_prob_rounds_halves_up(competing, certainty, expected):
    inputs = NegotiationInputs(
        target_company="Acme Corp", seller_ask_price=100_000_000,
        competing_bidders=competing, certainty_priority=certainty,
    )
    assert [o.accept_prob for o in generate_offer_scenarios(inputs)] == expected


def test_cash_capped_at_maximum(base_inputs):
    base_inputs.maximum_cash_at_close = 50_000_000
    offers = generate_offer_scenarios(base_inputs)
    assert all(o.cash_at_close <= 50_000_000 for o in offers)
    assert find_offer(offers, ScenarioArchetype.AGGRESSIVE).cash_at_close == 46_920_000


def test_fair_value_band_drives_prices(base_inputs):
    offers = generate_offer_scenarios(base_inputs, fair_value_low=90_000_000, fair_value_high=110_000_000)
    assert find_offer(offers, ScenarioArchetype.AGGRESSIVE).equity_value == 82_800_000
    assert find_offer(offers, ScenarioArchetype.BALANCED).equity_value == 100_000_000
    assert find_offer(offers, ScenarioArchetype.DEFENSIVE).equity_value == 107_800_000
    # Maximum Certainty always prices off the ask
    assert find_offer(offers, ScenarioArchetype.MAXIMUM_CERTAINTY).equity_value == 102_000_000


def test_acceptable_range_used_without_fair_values():
    inputs = NegotiationInputs(
        target_company="Acme",
        seller_ask_price=100_000_000,
        acceptable_price_range=(80_000_000, 90_000_000),
    )
    balanced = find_offer(generate_offer_scenarios(inputs), ScenarioArchetype.BALANCED)
    assert balanced.equity_value == 85_000_000


def test_earnout_and_working_capital_preferences_carried():
    inputs = NegotiationInputs(
        target_company="Acme",
        earnout_preferences=EarnoutPreferences(metric="Revenue", period="3y"),
        working_capital_adjustment="cash-free debt-free",
    )
    for offer in generate_offer_scenarios(inputs):
        assert offer.earnout_terms.metric == "Revenue"
        assert offer.earnout_terms.period == "3y"
        assert offer.working_capital == "cash-free debt-free"


def test_default_earnout_and_working_capital(base_inputs):
    offer = generate_offer_scenarios(base_inputs)[0]
    assert offer.earnout_terms.metric == "EBITDA"
    assert offer.earnout_terms.period == "2y"
    assert offer.working_capital == "peg + true-up"


def test_low_acceptance_flag_with_competition():
    inputs = NegotiationInputs(
        target_company="Acme", seller_ask_price=100_000_000, competing_bidders="yes", certainty_priority=0,
    )
    aggressive = generate_offer_scenarios(inputs)[0]
    # 0.5 - 0.10 + 0.05 - 0.05 + 0.04 - 0.05 = 0.39
    assert FLAG_LOW_ACCEPTANCE in aggressive.risk_flags
    assert requires_approval(aggressive.risk_flags)


def test_below_fair_value_flag_when_ask_far_under_value():
    inputs = NegotiationInputs(target_company="Acme", seller_ask_price=50_000_000)
    offers = generate_offer_scenarios(inputs, fair_value_low=100_000_000, fair_value_high=120_000_000)
    certainty = find_offer(offers, ScenarioArchetype.MAXIMUM_CERTAINTY)
    assert certainty.equity_value == 51_000_000
    assert FLAG_BELOW_FAIR_VALUE in certainty.risk_flags
    assert requires_approval(certainty.risk_flags)


def test_flags_only_from_known_rules(base_inputs):
    known = {FLAG_BELOW_FAIR_VALUE, FLAG_EARNOUT_DISPUTE, FLAG_HIGH_ESCROW, FLAG_LOW_ACCEPTANCE}
    for offer in generate_offer_scenarios(base_inputs):
        assert set(offer.risk_flags) <= known
        assert 0.0 <= offer.accept_prob <= 1.0
        assert offer.cash_at_close <= offer.equity_value


def test_certainty_priority_zero_is_honoured():
    low = NegotiationInputs(target_company="Acme", certainty_priority=0)
    mid = NegotiationInputs(target_company="Acme")
    assert generate_offer_scenarios(low)[1].accept_prob < generate_offer_scenarios(mid)[1].accept_prob


def test_find_offer_missing_raises(base_inputs):
    offers = generate_offer_scenarios(base_inputs)[:1]
    with pytest.raises(KeyError):
        find_offer(offers, ScenarioArchetype.BALANCED)
