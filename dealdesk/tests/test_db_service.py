import pytest
from sqlalchemy.exc import IntegrityError
from dealdesk.models.financial import FinancialModelRequest
from dealdesk.models.negotiation import CompanyRef, NegotiationInputs, NegotiationState
from dealdesk.services.db_service import DBService, RevisionConflictError, UsageConflictError


@pytest.fixture
def db(tmp_path):
    return DBService(f"sqlite:///{tmp_path}/test.db")


def test_research_usage_created_on_first_read(db):
    usage = db.get_research_usage("user-1")
    assert usage.usage_count == 0
    assert usage.last_used_at is None
    assert db.get_research_usage("user-1").usage_count == 0


def test_increment_with_expected_count(db):
    db.get_research_usage("user-1")
    updated = db.increment_research_usage("user-1", expected_count=0)
    assert updated.usage_count == 1
    assert updated.last_used_at is not None
    assert db.get_research_usage("user-1").usage_count == 1


def test_stale_increment_conflicts(db):
    db.get_research_usage("user-1")
    db.increment_research_usage("user-1", expected_count=0)
    with pytest.raises(UsageConflictError):
        db.increment_research_usage("user-1", expected_count=0)
    assert db.get_research_usage("user-1").usage_count == 1


def test_increment_without_record_conflicts(db):
    with pytest.raises(UsageConflictError):
        db.increment_negotiation_usage("nobody", expected_count=0)


def test_usage_counters_are_independent(db):
    db.get_research_usage("user-1")
    db.get_negotiation_usage("user-1")
    db.increment_negotiation_usage("user-1", 0)
    assert db.get_research_usage("user-1").usage_count == 0
    assert db.get_negotiation_usage("user-1").usage_count == 1


def test_run_lifecycle(db):
    request = FinancialModelRequest(ticker="ACME", csv_content="period,revenue\nFY23,100")
    run_id = db.create_run("user-1", request)
    assert db.get_run(run_id).status == "parsing"

    db.update_run_status(run_id, "modelling")
    assert db.get_run(run_id).status == "modelling"

    db.fail_run(run_id, "boom")
    run = db.get_run(run_id)
    assert run.status == "failed"
    assert run.error_text == "boom"
    assert run.completed_at is not None


def test_list_runs_scoped_and_limited(db):
    request = FinancialModelRequest(ticker="ACME", csv_content="x")
    for _ in range(3):
        db.create_run("user-1", request)
    db.create_run("user-2", request)
    assert len(db.list_runs("user-1")) == 3
    assert len(db.list_runs("user-1", limit=2)) == 2
    assert len(db.list_runs("user-2")) == 1


def test_negotiation_revision_compare_and_swap(db):
    negotiation = db.create_negotiation("user-1", CompanyRef(ticker="ACME", name="Acme"))
    assert negotiation.current_revision == 0
    assert negotiation.state is NegotiationState.DRAFT

    updated = db.update_negotiation(
        negotiation.id, expected_revision=0, state=NegotiationState.PENDING_APPROVAL, revision=1,
    )
    assert updated.current_revision == 1
    assert updated.state is NegotiationState.PENDING_APPROVAL

    with pytest.raises(RevisionConflictError):
        db.update_negotiation(negotiation.id, expected_revision=0, state=NegotiationState.DRAFT, revision=1)


def test_advance_revision_stores_revision_with_swap(db):
    negotiation = db.create_negotiation("user-1", CompanyRef())
    inputs = NegotiationInputs(target_company="Acme")
    db.add_revision(negotiation.id, 0, inputs)

    advanced = db.advance_revision(
        negotiation.id, expected_revision=0, state=NegotiationState.PENDING_APPROVAL, inputs=inputs,
        risk_flags=["LOW acceptance probability"],
    )
    assert advanced.current_revision == 1
    assert advanced.state is NegotiationState.PENDING_APPROVAL
    assert [r.revision for r in db.list_revisions(negotiation.id)] == [1, 0]


def test_advance_revision_conflict_writes_nothing(db):
    negotiation = db.create_negotiation("user-1", CompanyRef())
    inputs = NegotiationInputs(target_company="Acme")
    with pytest.raises(RevisionConflictError):
        db.advance_revision(negotiation.id, expected_revision=3, state=NegotiationState.DRAFT, inputs=inputs)
    assert db.list_revisions(negotiation.id) == []


def test_advance_revision_failed_insert_keeps_current_revision(db):
    negotiation = db.create_negotiation("user-1", CompanyRef())
    inputs = NegotiationInputs(target_company="Acme")
    db.add_revision(negotiation.id, 0, inputs)
    db.add_revision(negotiation.id, 1, inputs)

    with pytest.raises(IntegrityError):
        db.advance_revision(negotiation.id, expected_revision=0, state=NegotiationState.PENDING_APPROVAL, inputs=inputs)

    negotiation = db.get_negotiation(negotiation.id)
    assert negotiation.current_revision == 0
    assert negotiation.state is NegotiationState.DRAFT


def test_revisions_and_approvals_newest_first(db):
    negotiation = db.create_negotiation("user-1", CompanyRef())
    inputs = NegotiationInputs(target_company="Acme")
    db.add_revision(negotiation.id, 0, inputs)
    db.add_revision(negotiation.id, 1, inputs, risk_flags=["LOW acceptance probability"])
    db.add_approval(negotiation.id, 1, "user-1", approved=False, reason="too low")
    db.add_approval(negotiation.id, 1, "user-1", approved=True, reason="fine")

    revisions = db.list_revisions(negotiation.id)
    assert [r.revision for r in revisions] == [1, 0]
    assert revisions[0].risk_flags == ["LOW acceptance probability"]
    assert revisions[1].results is None

    approvals = db.list_approvals(negotiation.id)
    assert [a.decision for a in approvals] == ["approved", "rejected"]


def test_negotiation_audit_payload_round_trips(db):
    db.add_negotiation_audit(None, "BLOCKED_EXTERNAL_SEND", "user-1", payload={"email_to": "x@example.com"})
    entries = db.get_negotiation_audit("user-1")
    assert entries[0]["action"] == "BLOCKED_EXTERNAL_SEND"
    assert entries[0]["negotiation_id"] is None
    assert entries[0]["payload"] == {"email_to": "x@example.com"}
