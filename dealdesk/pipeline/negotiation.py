import logging
from datetime import date

from dealdesk.models.negotiation import (
    ApprovalRequest, ApprovalResponse, ArchiveRequest, CreateOrUpdateRequest, CreateOrUpdateResponse,
    GenerateRequest, InternalOnlyRequest, Negotiation, NegotiationHistory, NegotiationResults,
)
from dealdesk.negotiation.generator import generate_negotiation
from dealdesk.negotiation.workflow import (
    collect_risk_flags, requires_approval, state_after_archive, state_after_decision,
    state_after_generation, state_after_update,
)
from dealdesk.services.db_service import DBService, RevisionConflictError, UsageConflictError

logger = logging.getLogger(__name__)

USAGE_RETRIES = 3


class NegotiationNotFoundError(Exception):
    def __init__(self, negotiation_id: str):
        self.negotiation_id = negotiation_id
        super().__init__(f"Negotiation {negotiation_id} not found")


class ExternalSendBlockedError(Exception):
    def __init__(self):
        super().__init__("External sending is not permitted. All documents are internal only.")


class NegotiationWorkflow:
    """Revisioned negotiations: every write stores a revision or approval and an audit row."""

    def __init__(self, db: DBService):
        self.db = db

    def guard_internal_only(self, user_id: str, body: InternalOnlyRequest) -> None:
        if not body.wants_external_send():
            return
        negotiation_id = getattr(body, "negotiation_id", None) or getattr(body, "deal_id", None)
        logger.error(f"BLOCKED: user {user_id} attempted to send negotiation {negotiation_id} externally")
        self.db.add_negotiation_audit(
            negotiation_id,
            "BLOCKED_EXTERNAL_SEND",
            user_id,
            payload=body.model_dump(mode="json", exclude_none=True),
        )
        raise ExternalSendBlockedError()

    def _get_owned(self, user_id: str, negotiation_id: str) -> Negotiation:
        negotiation = self.db.get_negotiation(negotiation_id)
        if not negotiation or negotiation.user_id != user_id:
            raise NegotiationNotFoundError(negotiation_id)
        return negotiation

    def create_or_update(self, user_id: str, body: CreateOrUpdateRequest) -> CreateOrUpdateResponse:
        self.guard_internal_only(user_id, body)

        if body.deal_id:
            existing = self._get_owned(user_id, body.deal_id)
            negotiation = self.db.advance_revision(
                existing.id,
                expected_revision=existing.current_revision,
                state=state_after_update(existing.state),
                inputs=body.inputs,
                company=body.company,
            )
            action = "UPDATE"
        else:
            negotiation = self.db.create_negotiation(user_id, body.company)
            self.db.add_revision(negotiation.id, 0, body.inputs)
            action = "CREATE"
        revision = negotiation.current_revision

        self.db.add_negotiation_audit(
            negotiation.id,
            action,
            user_id,
            payload={
                "company": body.company.model_dump(mode="json"),
                "inputs": body.inputs.model_dump(mode="json"),
            },
        )
        self._record_usage(user_id)

        logger.info(f"{action} negotiation {negotiation.id} at revision {revision} for user {user_id}")
        return CreateOrUpdateResponse(negotiation_id=negotiation.id, revision=revision)

    def _record_usage(self, user_id: str) -> None:
        for attempt in range(USAGE_RETRIES):
            usage = self.db.get_negotiation_usage(user_id)
            try:
                self.db.increment_negotiation_usage(user_id, usage.usage_count)
                return
            except UsageConflictError:
                logger.warning(f"Negotiation usage conflict for {user_id}, attempt {attempt + 1}")
        raise UsageConflictError(user_id, usage.usage_count)

    def generate(self, user_id: str, body: GenerateRequest, as_of: date | None = None) -> NegotiationResults:
        self.guard_internal_only(user_id, body)
        negotiation = self._get_owned(user_id, body.negotiation_id)

        band = body.valuation_data
        results = generate_negotiation(
            body.inputs,
            fair_value_low=band.fair_value_low if band else None,
            fair_value_high=band.fair_value_high if band else None,
            as_of=as_of,
        )
        risk_flags = collect_risk_flags(results.offers)
        new_state = state_after_generation(negotiation.state, risk_flags)
        new_revision = negotiation.current_revision + 1

        results.revision = new_revision
        self.db.advance_revision(
            negotiation.id,
            expected_revision=negotiation.current_revision,
            state=new_state,
            inputs=body.inputs,
            results=results,
            risk_flags=risk_flags,
        )
        self.db.add_negotiation_audit(
            negotiation.id,
            "GENERATE",
            user_id,
            payload={"revision": new_revision, "risk_flags": risk_flags},
        )

        results.requires_approval = requires_approval(risk_flags)
        results.state = new_state
        logger.info(
            f"Generated revision {new_revision} for negotiation {negotiation.id}: "
            f"state={new_state.value}, risk_flags={risk_flags}"
        )
        return results

    def decide(self, user_id: str, body: ApprovalRequest) -> ApprovalResponse:
        self.guard_internal_only(user_id, body)
        negotiation = self._get_owned(user_id, body.negotiation_id)
        if body.revision != negotiation.current_revision:
            raise RevisionConflictError(negotiation.id, body.revision)

        new_state = state_after_decision(negotiation.state, body.approved)
        self.db.update_negotiation(negotiation.id, expected_revision=body.revision, state=new_state)
        approval = self.db.add_approval(negotiation.id, body.revision, user_id, body.approved, body.reason)
        self.db.add_negotiation_audit(
            negotiation.id,
            "APPROVED" if body.approved else "REJECTED",
            user_id,
            payload={"revision": body.revision, "reason": body.reason},
        )

        logger.info(f"Negotiation {negotiation.id} revision {body.revision} {approval.decision} by {user_id}")
        return ApprovalResponse(decision=approval.decision, state=new_state)

    def archive(self, user_id: str, body: ArchiveRequest) -> Negotiation:
        self.guard_internal_only(user_id, body)
        negotiation = self._get_owned(user_id, body.negotiation_id)

        archived = self.db.update_negotiation(
            negotiation.id,
            expected_revision=negotiation.current_revision,
            state=state_after_archive(negotiation.state),
        )
        self.db.add_negotiation_audit(
            negotiation.id,
            "ARCHIVED",
            user_id,
            payload={"revision": negotiation.current_revision, "previous_state": negotiation.state.value},
        )
        logger.info(f"Negotiation {negotiation.id} archived by {user_id}")
        return archived

    def history(self, user_id: str, negotiation_id: str) -> NegotiationHistory:
        self._get_owned(user_id, negotiation_id)
        return NegotiationHistory(
            revisions=self.db.list_revisions(negotiation_id),
            approvals=self.db.list_approvals(negotiation_id),
        )

    def list_for_user(self, user_id: str) -> list[Negotiation]:
        return self.db.list_negotiations(user_id)
