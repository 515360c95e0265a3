from dealdesk.models.financial import (
    WorkingCapitalDays, FinancialAssumptions, HistoricalFinancialRow, ForecastRow, SensitivityCell,
    DCFSummary, ModelChecks, DCFModelOutput, DCFComputeRequest, Provenance, FinancialModelResult,
    FinancialModelRequest, FinancialModelRun, FinancialModelRunSummary,
)
from dealdesk.models.negotiation import (
    NegotiationState, EarnoutPreferences, EscrowPreferences, NegotiationInputs, EarnoutTerms,
    OfferScenario, Playbook, BATNA, NegotiationResults, CompanyRef, Negotiation,
    NegotiationRevision, NegotiationApproval, NegotiationHistory,
)
from dealdesk.models.research import (
    CompanyOverview, NewsItem, ResearchBrief, ComparableCompany, ResearchAnalysis,
    ResearchResult, UsageCounter, ResearchUsage, LLMCallLog,
)

__all__ = [
    "WorkingCapitalDays", "FinancialAssumptions", "HistoricalFinancialRow", "ForecastRow", "SensitivityCell",
    "DCFSummary", "ModelChecks", "DCFModelOutput", "DCFComputeRequest", "Provenance", "FinancialModelResult",
    "FinancialModelRequest", "FinancialModelRun", "FinancialModelRunSummary",
    "NegotiationState", "EarnoutPreferences", "EscrowPreferences", "NegotiationInputs", "EarnoutTerms",
    "OfferScenario", "Playbook", "BATNA", "NegotiationResults", "CompanyRef", "Negotiation",
    "NegotiationRevision", "NegotiationApproval", "NegotiationHistory",
    "CompanyOverview", "NewsItem", "ResearchBrief", "ComparableCompany", "ResearchAnalysis",
    "ResearchResult", "UsageCounter", "ResearchUsage", "LLMCallLog",
]
