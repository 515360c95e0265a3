import json
import os
import logging
from datetime import datetime, timezone
from sqlalchemy import create_engine, desc
from sqlalchemy.orm import sessionmaker

from dealdesk.models.db import (
    Base, FinancialModelRunRecord, FinancialModelAuditEntry,
    NegotiationRecord, NegotiationRevisionRecord, NegotiationApprovalRecord, NegotiationAuditEntry,
    NegotiationUsageRecord, ResearchUsageRecord, CompanyReportRecord, LLMCallRecord,
)
from dealdesk.models.financial import (
    FinancialAssumptions, FinancialModelRequest, FinancialModelResult,
    FinancialModelRun, FinancialModelRunSummary,
)
from dealdesk.models.negotiation import (
    CompanyRef, Negotiation, NegotiationApproval, NegotiationInputs, NegotiationResults,
    NegotiationRevision, NegotiationState,
)
from dealdesk.models.research import LLMCallLog, ResearchResult, UsageCounter

logger = logging.getLogger(__name__)

PROMPT_VERSION = "v1.0"
AGENT_VERSION_HASH = "mvp-1.0.0"


class UsageConflictError(Exception):
    """The usage counter moved between read and write."""
    def __init__(self, user_id: str, expected_count: int):
        self.user_id = user_id
        self.expected_count = expected_count
        super().__init__(f"Usage counter for {user_id} is no longer {expected_count}")


class RevisionConflictError(Exception):
    """The negotiation was revised by another request between read and write."""
    def __init__(self, negotiation_id: str, expected_revision: int):
        self.negotiation_id = negotiation_id
        self.expected_revision = expected_revision
        super().__init__(f"Negotiation {negotiation_id} is no longer at revision {expected_revision}")


def _now():
    return datetime.now(timezone.utc)


class DBService:
    def __init__(self, database_url: str | None = None):
        url = database_url or os.getenv("DATABASE_URL", "sqlite:///./dealdesk.db")
        self.engine = create_engine(url, echo=False)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)

    # --- Financial model runs ---

    def create_run(self, user_id: str, request: FinancialModelRequest, status: str = "parsing") -> str:
        session = self.Session()
        try:
            record = FinancialModelRunRecord(
                user_id=user_id,
                ticker=request.ticker,
                company_name=request.company_name,
                fiscal_year_end=request.fiscal_year_end,
                currency=request.currency,
                workflow_id=request.workflow_id,
                assumptions_json=request.assumptions.model_dump_json() if request.assumptions else None,
                status=status,
            )
            session.add(record)
            session.commit()
            return record.id
        finally:
            session.close()

    def update_run_status(self, run_id: str, status: str) -> None:
        session = self.Session()
        try:
            session.query(FinancialModelRunRecord).filter_by(id=run_id).update({"status": status})
            session.commit()
        finally:
            session.close()

    def complete_run(self, run_id: str, result: FinancialModelResult) -> None:
        session = self.Session()
        try:
            session.query(FinancialModelRunRecord).filter_by(id=run_id).update({
                "status": "done",
                "result_json": result.model_dump_json(),
                "assumptions_json": result.assumptions.model_dump_json(),
                "enterprise_value": result.dcf.enterprise_value,
                "completed_at": _now(),
            })
            session.commit()
        finally:
            session.close()

    def fail_run(self, run_id: str, error_text: str) -> None:
        session = self.Session()
        try:
            session.query(FinancialModelRunRecord).filter_by(id=run_id).update({
                "status": "failed",
                "error_text": error_text,
                "completed_at": _now(),
            })
            session.commit()
        finally:
            session.close()

    def get_run(self, run_id: str) -> FinancialModelRun | None:
        session = self.Session()
        try:
            r = session.query(FinancialModelRunRecord).filter_by(id=run_id).first()
            if not r:
                return None
            return FinancialModelRun(
                id=r.id,
                user_id=r.user_id,
                ticker=r.ticker,
                company_name=r.company_name,
                fiscal_year_end=r.fiscal_year_end,
                currency=r.currency,
                workflow_id=r.workflow_id,
                assumptions=FinancialAssumptions.model_validate_json(r.assumptions_json) if r.assumptions_json else None,
                status=r.status,
                error_text=r.error_text,
                result=FinancialModelResult.model_validate_json(r.result_json) if r.result_json else None,
                created_at=r.created_at,
                completed_at=r.completed_at,
            )
        finally:
            session.close()

    def list_runs(self, user_id: str, limit: int = 20) -> list[FinancialModelRunSummary]:
        session = self.Session()
        try:
            records = (
                session.query(FinancialModelRunRecord)
                .filter_by(user_id=user_id)
                .order_by(desc(FinancialModelRunRecord.created_at))
                .limit(limit)
                .all()
            )
            return [
                FinancialModelRunSummary(
                    id=r.id,
                    ticker=r.ticker,
                    company_name=r.company_name,
                    status=r.status,
                    enterprise_value=r.enterprise_value,
                    created_at=r.created_at,
                )
                for r in records
            ]
        finally:
            session.close()

    def add_model_audit(self, run_id: str, notes: str) -> None:
        session = self.Session()
        try:
            session.add(FinancialModelAuditEntry(
                run_id=run_id,
                prompt_version=PROMPT_VERSION,
                agent_version_hash=AGENT_VERSION_HASH,
                notes=notes,
            ))
            session.commit()
        finally:
            session.close()

    def get_model_audit(self, run_id: str) -> list[dict]:
        session = self.Session()
        try:
            entries = session.query(FinancialModelAuditEntry).filter_by(run_id=run_id).all()
            return [
                {
                    "prompt_version": e.prompt_version,
                    "agent_version_hash": e.agent_version_hash,
                    "notes": e.notes,
                    "created_at": e.created_at.isoformat() if e.created_at else None,
                }
                for e in entries
            ]
        finally:
            session.close()

    # --- Negotiations ---

    @staticmethod
    def _to_negotiation(r: NegotiationRecord) -> Negotiation:
        return Negotiation(
            id=r.id,
            user_id=r.user_id,
            company=CompanyRef.model_validate_json(r.company_json),
            current_revision=r.current_revision,
            state=NegotiationState(r.state),
            created_at=r.created_at,
            updated_at=r.updated_at,
        )

    def create_negotiation(self, user_id: str, company: CompanyRef) -> Negotiation:
        session = self.Session()
        try:
            record = NegotiationRecord(
                user_id=user_id,
                company_json=company.model_dump_json(),
                current_revision=0,
                state=NegotiationState.DRAFT.value,
            )
            session.add(record)
            session.commit()
            return self._to_negotiation(record)
        finally:
            session.close()

    def get_negotiation(self, negotiation_id: str) -> Negotiation | None:
        session = self.Session()
        try:
            record = session.query(NegotiationRecord).filter_by(id=negotiation_id).first()
            return self._to_negotiation(record) if record else None
        finally:
            session.close()

    def list_negotiations(self, user_id: str) -> list[Negotiation]:
        session = self.Session()
        try:
            records = (
                session.query(NegotiationRecord)
                .filter_by(user_id=user_id)
                .order_by(desc(NegotiationRecord.updated_at))
                .all()
            )
            return [self._to_negotiation(r) for r in records]
        finally:
            session.close()

    @staticmethod
    def _negotiation_values(
        state: NegotiationState, revision: int | None = None, company: CompanyRef | None = None,
    ) -> dict:
        values = {"state": state.value, "updated_at": _now()}
        if revision is not None:
            values["current_revision"] = revision
        if company is not None:
            values["company_json"] = company.model_dump_json()
        return values

    @staticmethod
    def _swap_revision(session, negotiation_id: str, expected_revision: int, values: dict) -> None:
        matched = (
            session.query(NegotiationRecord)
            .filter_by(id=negotiation_id, current_revision=expected_revision)
            .update(values, synchronize_session=False)
        )
        if matched == 0:
            raise RevisionConflictError(negotiation_id, expected_revision)

    @staticmethod
    def _revision_record(
        negotiation_id: str,
        revision: int,
        inputs: NegotiationInputs,
        results: NegotiationResults | None,
        risk_flags: list[str] | None,
    ) -> NegotiationRevisionRecord:
        return NegotiationRevisionRecord(
            negotiation_id=negotiation_id,
            revision=revision,
            inputs_json=inputs.model_dump_json(),
            results_json=results.model_dump_json() if results else None,
            risk_flags_json=json.dumps(risk_flags or []),
        )

    def update_negotiation(
        self,
        negotiation_id: str,
        expected_revision: int,
        state: NegotiationState,
        revision: int | None = None,
        company: CompanyRef | None = None,
    ) -> Negotiation:
        """Compare-and-swap on current_revision so concurrent writers cannot both advance it."""
        session = self.Session()
        try:
            try:
                self._swap_revision(
                    session, negotiation_id, expected_revision,
                    self._negotiation_values(state, revision, company),
                )
                session.commit()
            except Exception:
                session.rollback()
                raise
            record = session.query(NegotiationRecord).filter_by(id=negotiation_id).first()
            return self._to_negotiation(record)
        finally:
            session.close()

    def advance_revision(
        self,
        negotiation_id: str,
        expected_revision: int,
        state: NegotiationState,
        inputs: NegotiationInputs,
        results: NegotiationResults | None = None,
        risk_flags: list[str] | None = None,
        company: CompanyRef | None = None,
    ) -> Negotiation:
        """Move the negotiation to expected_revision + 1 and store that revision in one transaction."""
        revision = expected_revision + 1
        session = self.Session()
        try:
            try:
                self._swap_revision(
                    session, negotiation_id, expected_revision,
                    self._negotiation_values(state, revision, company),
                )
                session.add(self._revision_record(negotiation_id, revision, inputs, results, risk_flags))
                session.commit()
            except Exception:
                session.rollback()
                raise
            record = session.query(NegotiationRecord).filter_by(id=negotiation_id).first()
            return self._to_negotiation(record)
        finally:
            session.close()

    def add_revision(
        self,
        negotiation_id: str,
        revision: int,
        inputs: NegotiationInputs,
        results: NegotiationResults | None = None,
        risk_flags: list[str] | None = None,
    ) -> NegotiationRevision:
        session = self.Session()
        try:
            record = self._revision_record(negotiation_id, revision, inputs, results, risk_flags)
            session.add(record)
            session.commit()
            return NegotiationRevision(
                id=record.id,
                negotiation_id=negotiation_id,
                revision=revision,
                inputs=inputs,
                results=results,
                risk_flags=risk_flags or [],
                created_at=record.created_at,
            )
        finally:
            session.close()

    def list_revisions(self, negotiation_id: str) -> list[NegotiationRevision]:
        session = self.Session()
        try:
            records = (
                session.query(NegotiationRevisionRecord)
                .filter_by(negotiation_id=negotiation_id)
                .order_by(desc(NegotiationRevisionRecord.revision), desc(NegotiationRevisionRecord.id))
                .all()
            )
            return [
                NegotiationRevision(
                    id=r.id,
                    negotiation_id=r.negotiation_id,
                    revision=r.revision,
                    inputs=NegotiationInputs.model_validate_json(r.inputs_json),
                    results=NegotiationResults.model_validate_json(r.results_json) if r.results_json else None,
                    risk_flags=json.loads(r.risk_flags_json),
                    created_at=r.created_at,
                )
                for r in records
            ]
        finally:
            session.close()

    def add_approval(
        self,
        negotiation_id: str,
        revision: int,
        user_id: str,
        approved: bool,
        reason: str,
    ) -> NegotiationApproval:
        session = self.Session()
        try:
            record = NegotiationApprovalRecord(
                negotiation_id=negotiation_id,
                revision=revision,
                user_id=user_id,
                decision="approved" if approved else "rejected",
                reason=reason,
            )
            session.add(record)
            session.commit()
            return NegotiationApproval(
                id=record.id,
                negotiation_id=negotiation_id,
                revision=revision,
                user_id=user_id,
                decision=record.decision,
                reason=reason,
                created_at=record.created_at,
            )
        finally:
            session.close()

    def list_approvals(self, negotiation_id: str) -> list[NegotiationApproval]:
        session = self.Session()
        try:
            records = (
                session.query(NegotiationApprovalRecord)
                .filter_by(negotiation_id=negotiation_id)
                .order_by(desc(NegotiationApprovalRecord.created_at), desc(NegotiationApprovalRecord.id))
                .all()
            )
            return [
                NegotiationApproval(
                    id=r.id,
                    negotiation_id=r.negotiation_id,
                    revision=r.revision,
                    user_id=r.user_id,
                    decision=r.decision,
                    reason=r.reason,
                    created_at=r.created_at,
                )
                for r in records
            ]
        finally:
            session.close()

    def add_negotiation_audit(
        self,
        negotiation_id: str | None,
        action: str,
        user_id: str,
        payload: dict | None = None,
    ) -> None:
        session = self.Session()
        try:
            session.add(NegotiationAuditEntry(
                negotiation_id=negotiation_id,
                action=action,
                payload_json=json.dumps(payload, default=str) if payload is not None else None,
                user_id=user_id,
            ))
            session.commit()
        finally:
            session.close()

    def get_negotiation_audit(self, user_id: str, negotiation_id: str | None = None) -> list[dict]:
        session = self.Session()
        try:
            query = session.query(NegotiationAuditEntry).filter_by(user_id=user_id)
            if negotiation_id is not None:
                query = query.filter_by(negotiation_id=negotiation_id)
            return [
                {
                    "negotiation_id": e.negotiation_id,
                    "action": e.action,
                    "payload": json.loads(e.payload_json) if e.payload_json else None,
                    "created_at": e.created_at.isoformat() if e.created_at else None,
                }
                for e in query.order_by(NegotiationAuditEntry.id).all()
            ]
        finally:
            session.close()

    # --- Usage counters ---

    def _get_usage(self, model, user_id: str) -> UsageCounter:
        session = self.Session()
        try:
            record = session.query(model).filter_by(user_id=user_id).first()
            if not record:
                record = model(user_id=user_id, usage_count=0)
                session.add(record)
                session.commit()
            return UsageCounter(user_id=user_id, usage_count=record.usage_count, last_used_at=record.last_used_at)
        finally:
            session.close()

    def _increment_usage(self, model, user_id: str, expected_count: int) -> UsageCounter:
        used_at = _now()
        session = self.Session()
        try:
            matched = (
                session.query(model)
                .filter_by(user_id=user_id, usage_count=expected_count)
                .update({"usage_count": expected_count + 1, "last_used_at": used_at}, synchronize_session=False)
            )
            if matched == 0:
                session.rollback()
                logger.warning(f"Usage conflict on {model.__tablename__} for {user_id} (expected {expected_count})")
                raise UsageConflictError(user_id, expected_count)
            session.commit()
            return UsageCounter(user_id=user_id, usage_count=expected_count + 1, last_used_at=used_at)
        finally:
            session.close()

    def get_research_usage(self, user_id: str) -> UsageCounter:
        return self._get_usage(ResearchUsageRecord, user_id)

    def increment_research_usage(self, user_id: str, expected_count: int) -> UsageCounter:
        return self._increment_usage(ResearchUsageRecord, user_id, expected_count)

    def get_negotiation_usage(self, user_id: str) -> UsageCounter:
        return self._get_usage(NegotiationUsageRecord, user_id)

    def increment_negotiation_usage(self, user_id: str, expected_count: int) -> UsageCounter:
        return self._increment_usage(NegotiationUsageRecord, user_id, expected_count)

    # --- Company research reports ---

    def save_company_report(self, user_id: str, result: ResearchResult, llm_calls: list[LLMCallLog]) -> str:
        session = self.Session()
        try:
            record = CompanyReportRecord(
                user_id=user_id,
                ticker=result.ticker,
                company_name=result.company_name,
                report_json=result.model_dump_json(),
            )
            session.add(record)
            session.flush()

            for log in llm_calls:
                session.add(LLMCallRecord(
                    report_id=record.id,
                    step_name=log.step_name,
                    model=log.model,
                    system_prompt=log.system_prompt,
                    user_prompt=log.user_prompt,
                    response=log.response,
                    tokens_used=log.tokens_used,
                    duration_ms=log.duration_ms,
                ))

            session.commit()
            return record.id
        finally:
            session.close()

    def list_company_reports(self, user_id: str) -> list[dict]:
        session = self.Session()
        try:
            records = (
                session.query(CompanyReportRecord)
                .filter_by(user_id=user_id)
                .order_by(desc(CompanyReportRecord.created_at))
                .all()
            )
            return [
                {
                    "id": r.id,
                    "ticker": r.ticker,
                    "company_name": r.company_name,
                    "created_at": r.created_at.isoformat() if r.created_at else None,
                }
                for r in records
            ]
        finally:
            session.close()

    def get_llm_calls(self, report_id: str) -> list[LLMCallLog]:
        session = self.Session()
        try:
            calls = session.query(LLMCallRecord).filter_by(report_id=report_id).all()
            return [
                LLMCallLog(
                    step_name=c.step_name,
                    model=c.model,
                    system_prompt=c.system_prompt,
                    user_prompt=c.user_prompt,
                    response=c.response,
                    tokens_used=c.tokens_used,
                    duration_ms=c.duration_ms,
                    timestamp=c.created_at,
                )
                for c in calls
            ]
        finally:
            session.close()
