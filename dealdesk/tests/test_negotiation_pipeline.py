from datetime import date

import pytest
from dealdesk.models.negotiation import (
    ApprovalRequest, ArchiveRequest, CompanyRef, CreateOrUpdateRequest, GenerateRequest,
    NegotiationInputs, NegotiationState, ValuationBand,
)
from dealdesk.negotiation.workflow import InvalidTransitionError
from dealdesk.pipeline.negotiation import (
    ExternalSendBlockedError, NegotiationNotFoundError, NegotiationWorkflow,
)
from dealdesk.services.db_service import DBService, RevisionConflictError

AS_OF = date(2024, 3, 15)


@pytest.fixture
def db(tmp_path):
    return DBService(f"sqlite:///{tmp_path}/test.db")


@pytest.fixture
def workflow(db):
    return NegotiationWorkflow(db)


@pytest.fixture
def inputs():
    return NegotiationInputs(target_company="Acme Corp", seller_ask_price=100_000_000)


@pytest.fixture
def risky_inputs():
    return NegotiationInputs(
        target_company="Acme Corp", seller_ask_price=100_000_000, competing_bidders="yes", certainty_priority=0,
    )


def _create(workflow, inputs, user_id="user-1"):
    body = CreateOrUpdateRequest(company=CompanyRef(ticker="ACME", name="Acme Corp"), inputs=inputs)
    return workflow.create_or_update(user_id, body)


def test_create_starts_at_revision_zero(workflow, db, inputs):
    created = _create(workflow, inputs)
    assert created.revision == 0

    negotiation = db.get_negotiation(created.negotiation_id)
    assert negotiation.state is NegotiationState.DRAFT
    assert negotiation.company.ticker == "ACME"
    assert [r.revision for r in db.list_revisions(created.negotiation_id)] == [0]
    assert db.get_negotiation_usage("user-1").usage_count == 1
    assert [e["action"] for e in db.get_negotiation_audit("user-1", created.negotiation_id)] == ["CREATE"]


def test_update_bumps_revision(workflow, db, inputs):
    created = _create(workflow, inputs)
    body = CreateOrUpdateRequest(deal_id=created.negotiation_id, inputs=inputs)
    updated = workflow.create_or_update("user-1", body)

    assert updated.negotiation_id == created.negotiation_id
    assert updated.revision == 1
    assert db.get_negotiation_usage("user-1").usage_count == 2
    actions = [e["action"] for e in db.get_negotiation_audit("user-1", created.negotiation_id)]
    assert actions == ["CREATE", "UPDATE"]


def test_update_unknown_negotiation(workflow, inputs):
    with pytest.raises(NegotiationNotFoundError):
        workflow.create_or_update("user-1", CreateOrUpdateRequest(deal_id="missing", inputs=inputs))


def test_other_users_negotiation_not_visible(workflow, inputs):
    created = _create(workflow, inputs, user_id="user-1")
    with pytest.raises(NegotiationNotFoundError):
        workflow.history("user-2", created.negotiation_id)


def test_generate_without_flags_stays_draft(workflow, db, inputs):
    created = _create(workflow, inputs)
    results = workflow.generate(
        "user-1", GenerateRequest(negotiation_id=created.negotiation_id, inputs=inputs), as_of=AS_OF,
    )

    assert results.revision == 1
    assert results.requires_approval is False
    assert results.state is NegotiationState.DRAFT
    assert len(results.offers) == 4
    assert "2024-03-15" in results.memo

    stored = db.list_revisions(created.negotiation_id)[0]
    assert stored.revision == 1
    assert stored.results == results.model_copy(update={"requires_approval": None, "state": None})
    assert stored.risk_flags == ["Earnout dispute risk", "High escrow may deter seller"]


def test_generate_with_high_risk_needs_approval(workflow, db, risky_inputs):
    created = _create(workflow, risky_inputs)
    results = workflow.generate(
        "user-1", GenerateRequest(negotiation_id=created.negotiation_id, inputs=risky_inputs),
    )
    assert results.requires_approval is True
    assert results.state is NegotiationState.PENDING_APPROVAL
    assert db.get_negotiation(created.negotiation_id).state is NegotiationState.PENDING_APPROVAL

    [audit] = [e for e in db.get_negotiation_audit("user-1") if e["action"] == "GENERATE"]
    assert audit["payload"]["revision"] == 1
    assert "LOW acceptance probability" in audit["payload"]["risk_flags"]


def test_generate_uses_valuation_band(workflow, inputs):
    created = _create(workflow, inputs)
    results = workflow.generate("user-1", GenerateRequest(
        negotiation_id=created.negotiation_id,
        inputs=inputs,
        valuation_data=ValuationBand(fair_value_low=90_000_000, fair_value_high=110_000_000),
    ))
    assert results.offers[1].equity_value == 100_000_000
    assert results.zopa == (90_000_000, 105_000_000)


def test_approve_pending_revision(workflow, db, risky_inputs):
    created = _create(workflow, risky_inputs)
    workflow.generate("user-1", GenerateRequest(negotiation_id=created.negotiation_id, inputs=risky_inputs))

    response = workflow.decide("user-1", ApprovalRequest(
        negotiation_id=created.negotiation_id, revision=1, approved=True, reason="Board signed off",
    ))
    assert response.decision == "approved"
    assert response.state is NegotiationState.APPROVED
    assert db.get_negotiation(created.negotiation_id).state is NegotiationState.APPROVED

    history = workflow.history("user-1", created.negotiation_id)
    assert [a.decision for a in history.approvals] == ["approved"]
    assert [r.revision for r in history.revisions] == [1, 0]


def test_reject_returns_to_draft(workflow, db, risky_inputs):
    created = _create(workflow, risky_inputs)
    workflow.generate("user-1", GenerateRequest(negotiation_id=created.negotiation_id, inputs=risky_inputs))

    response = workflow.decide("user-1", ApprovalRequest(
        negotiation_id=created.negotiation_id, revision=1, approved=False, reason="Too aggressive",
    ))
    assert response.decision == "rejected"
    assert db.get_negotiation(created.negotiation_id).state is NegotiationState.DRAFT
    actions = [e["action"] for e in db.get_negotiation_audit("user-1", created.negotiation_id)]
    assert actions == ["CREATE", "GENERATE", "REJECTED"]


def test_approve_requires_pending_state(workflow, inputs):
    created = _create(workflow, inputs)
    with pytest.raises(InvalidTransitionError):
        workflow.decide("user-1", ApprovalRequest(
            negotiation_id=created.negotiation_id, revision=0, approved=True, reason="ok",
        ))


def test_approve_stale_revision_conflicts(workflow, risky_inputs):
    created = _create(workflow, risky_inputs)
    workflow.generate("user-1", GenerateRequest(negotiation_id=created.negotiation_id, inputs=risky_inputs))
    with pytest.raises(RevisionConflictError):
        workflow.decide("user-1", ApprovalRequest(
            negotiation_id=created.negotiation_id, revision=0, approved=True, reason="ok",
        ))


def test_archived_negotiation_cannot_generate(workflow, db, inputs):
    created = _create(workflow, inputs)
    archived = workflow.archive("user-1", ArchiveRequest(negotiation_id=created.negotiation_id))
    assert archived.state is NegotiationState.ARCHIVED

    with pytest.raises(InvalidTransitionError):
        workflow.generate("user-1", GenerateRequest(negotiation_id=created.negotiation_id, inputs=inputs))
    assert db.get_negotiation(created.negotiation_id).current_revision == 0


def test_external_send_blocked_and_audited(workflow, db, inputs):
    created = _create(workflow, inputs)
    body = GenerateRequest(negotiation_id=created.negotiation_id, inputs=inputs, email_to="seller@example.com")

    with pytest.raises(ExternalSendBlockedError):
        workflow.generate("user-1", body)

    blocked = [e for e in db.get_negotiation_audit("user-1") if e["action"] == "BLOCKED_EXTERNAL_SEND"]
    assert len(blocked) == 1
    assert blocked[0]["negotiation_id"] == created.negotiation_id
    assert blocked[0]["payload"]["email_to"] == "seller@example.com"
    assert db.get_negotiation(created.negotiation_id).current_revision == 0


def test_list_for_user(workflow, inputs):
    _create(workflow, inputs, user_id="user-1")
    _create(workflow, inputs, user_id="user-1")
    _create(workflow, inputs, user_id="user-2")
    assert len(workflow.list_for_user("user-1")) == 2
    assert len(workflow.list_for_user("user-2")) == 1
