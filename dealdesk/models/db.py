from sqlalchemy import Column, String, Text, DateTime, Float, Integer, UniqueConstraint
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone
import uuid

Base = declarative_base()


def _now():
    return datetime.now(timezone.utc)


class FinancialModelRunRecord(Base):
    __tablename__ = "financial_model_runs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    ticker = Column(String, nullable=False)
    company_name = Column(String, nullable=True)
    fiscal_year_end = Column(String, nullable=True)
    currency = Column(String, nullable=True)
    workflow_id = Column(String, nullable=True)
    assumptions_json = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="queued")
    error_text = Column(Text, nullable=True)
    result_json = Column(Text, nullable=True)
    enterprise_value = Column(Float, nullable=True)
    created_at = Column(DateTime, default=_now)
    completed_at = Column(DateTime, nullable=True)


class FinancialModelAuditEntry(Base):
    __tablename__ = "financial_model_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String, nullable=False)
    prompt_version = Column(String, nullable=True)
    agent_version_hash = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_now)


class NegotiationRecord(Base):
    __tablename__ = "negotiations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    company_json = Column(Text, nullable=False, default="{}")
    current_revision = Column(Integer, nullable=False, default=0)
    state = Column(String, nullable=False, default="draft")
    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now)


class NegotiationRevisionRecord(Base):
    __tablename__ = "negotiation_revisions"
    __table_args__ = (UniqueConstraint("negotiation_id", "revision"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    negotiation_id = Column(String, nullable=False, index=True)
    revision = Column(Integer, nullable=False)
    inputs_json = Column(Text, nullable=False)
    results_json = Column(Text, nullable=True)
    risk_flags_json = Column(Text, nullable=False, default="[]")
    created_at = Column(DateTime, default=_now)


class NegotiationApprovalRecord(Base):
    __tablename__ = "negotiation_approvals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    negotiation_id = Column(String, nullable=False, index=True)
    revision = Column(Integer, nullable=False)
    user_id = Column(String, nullable=False)
    decision = Column(String, nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_now)


class NegotiationAuditEntry(Base):
    __tablename__ = "negotiation_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    negotiation_id = Column(String, nullable=True)
    action = Column(String, nullable=False)
    payload_json = Column(Text, nullable=True)
    user_id = Column(String, nullable=False)
    created_at = Column(DateTime, default=_now)


class NegotiationUsageRecord(Base):
    __tablename__ = "negotiation_usage"

    user_id = Column(String, primary_key=True)
    usage_count = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime, nullable=True)


class ResearchUsageRecord(Base):
    __tablename__ = "user_research_usage"

    user_id = Column(String, primary_key=True)
    usage_count = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime, nullable=True)


class CompanyReportRecord(Base):
    __tablename__ = "company_reports"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    ticker = Column(String, nullable=False)
    company_name = Column(String, nullable=True)
    report_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_now)


class LLMCallRecord(Base):
    __tablename__ = "llm_call_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(String, nullable=False)
    step_name = Column(String, nullable=False)
    model = Column(String, nullable=False)
    system_prompt = Column(Text, nullable=False)
    user_prompt = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    tokens_used = Column(Integer, nullable=True)
    duration_ms = Column(Float, nullable=True)
    created_at = Column(DateTime, default=_now)
