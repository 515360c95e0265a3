from enum import Enum
from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import date, datetime


class NegotiationState(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    ARCHIVED = "archived"


class EarnoutPreferences(BaseModel):
    metric: str = "EBITDA"
    period: str = "2y"
    cap: Optional[float] = None


class EscrowPreferences(BaseModel):
    percentage: float
    duration_months: int


class NegotiationInputs(BaseModel):
    target_company: str = Field(..., min_length=1)
    company_name: Optional[str] = None
    ticker: Optional[str] = None
    seller_ask_price: Optional[float] = Field(None, gt=0, description="Seller's asking price in USD")
    acceptable_price_range: Optional[tuple[float, float]] = Field(None, description="Buyer's [low, high] acceptable price")
    maximum_cash_at_close: Optional[float] = Field(None, gt=0)
    desired_close_date: Optional[date] = None
    must_have_terms: list[str] = Field(default_factory=list)
    competing_bidders: Literal["yes", "no", "unknown"] = "unknown"
    certainty_priority: float = Field(5, ge=0, le=10, description="How much the seller values certainty of close, 0-10")
    earnout_preferences: Optional[EarnoutPreferences] = None
    escrow_preferences: Optional[EscrowPreferences] = None
    working_capital_adjustment: Optional[str] = None


class EarnoutTerms(BaseModel):
    metric: str
    period: str
    cap: float


class OfferScenario(BaseModel):
    label: str
    equity_value: float
    cash_at_close: float
    earnout_terms: EarnoutTerms
    escrow_pct: float
    working_capital: str
    accept_prob: float = Field(..., ge=0, le=1)
    rationale: str
    risk_flags: list[str] = Field(default_factory=list)
    closing_days: int


class Playbook(BaseModel):
    opening_anchor: str
    expected_reactions: list[str]
    concessions_ladder: list[str]
    key_talking_points: list[str]


class BATNA(BaseModel):
    buyer: str
    seller: str


class NegotiationResults(BaseModel):
    offers: list[OfferScenario]
    zopa: tuple[float, float]
    batna: BATNA
    playbook: Playbook
    memo: str
    draft_loi: str
    revision: Optional[int] = None
    requires_approval: Optional[bool] = None
    state: Optional[NegotiationState] = None


# --- Request / response bodies ---

class InternalOnlyRequest(BaseModel):
    """Documents never leave the building; these fields exist only so the guard can see them."""
    send_external: Optional[bool] = None
    external: Optional[bool] = None
    email_to: Optional[str] = None

    def wants_external_send(self) -> bool:
        return bool(self.send_external or self.external or self.email_to)


class CompanyRef(BaseModel):
    ticker: Optional[str] = None
    name: Optional[str] = None


class CreateOrUpdateRequest(InternalOnlyRequest):
    deal_id: Optional[str] = None
    company: CompanyRef = Field(default_factory=CompanyRef)
    inputs: NegotiationInputs


class ValuationBand(BaseModel):
    fair_value_low: Optional[float] = Field(None, gt=0)
    fair_value_high: Optional[float] = Field(None, gt=0)


class GenerateRequest(InternalOnlyRequest):
    negotiation_id: str
    inputs: NegotiationInputs
    valuation_data: Optional[ValuationBand] = None
    modeling_data: Optional[dict] = None


class ApprovalRequest(InternalOnlyRequest):
    negotiation_id: str
    revision: int = Field(..., ge=0)
    approved: bool
    reason: str = Field(..., min_length=1)


class ArchiveRequest(InternalOnlyRequest):
    negotiation_id: str


class Negotiation(BaseModel):
    id: str
    user_id: str
    company: CompanyRef
    current_revision: int = 0
    state: NegotiationState = NegotiationState.DRAFT
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NegotiationRevision(BaseModel):
    id: int
    negotiation_id: str
    revision: int
    inputs: NegotiationInputs
    results: Optional[NegotiationResults] = None
    risk_flags: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class NegotiationApproval(BaseModel):
    id: int
    negotiation_id: str
    revision: int
    user_id: str
    decision: Literal["approved", "rejected"]
    reason: str
    created_at: Optional[datetime] = None


class CreateOrUpdateResponse(BaseModel):
    negotiation_id: str
    revision: int


class ApprovalResponse(BaseModel):
    success: bool = True
    decision: Literal["approved", "rejected"]
    state: NegotiationState


class NegotiationHistory(BaseModel):
    revisions: list[NegotiationRevision] = Field(default_factory=list)
    approvals: list[NegotiationApproval] = Field(default_factory=list)
