from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone


class CompanyOverview(BaseModel):
    symbol: str
    name: str
    description: Optional[str] = None
    exchange: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    market_cap: Optional[float] = None
    pe_ratio: Optional[float] = None
    dividend_yield: Optional[float] = None
    eps: Optional[float] = None
    revenue_ttm: Optional[float] = None
    profit_margin: Optional[float] = None
    operating_margin: Optional[float] = None
    return_on_equity: Optional[float] = None
    beta: Optional[float] = None
    high_52_week: Optional[float] = None
    low_52_week: Optional[float] = None
    data_source: Optional[str] = None
    fetched_at: Optional[datetime] = None


class NewsItem(BaseModel):
    title: str
    summary: Optional[str] = None
    source: Optional[str] = None
    time_published: Optional[str] = None
    overall_sentiment_label: Optional[str] = None


class ResearchBrief(BaseModel):
    overview: str = Field(..., description="2-3 sentence company overview")
    business_model: str = Field(..., description="How the company makes money, 2-3 sentences")
    financials: str = Field(..., description="Key financial highlights and health assessment, 2-3 sentences")
    risks: list[str] = Field(default_factory=list, description="Three key risks")
    opportunities: list[str] = Field(default_factory=list, description="Three key opportunities")


class ComparableCompany(BaseModel):
    company_name: str
    ticker: str
    similarity_score: float = Field(..., ge=0, le=100)
    reasoning: str = ""
    key_metrics: dict[str, str] = Field(default_factory=dict, description="e.g. {marketCap, peRatio, sector}")


class ResearchAnalysis(BaseModel):
    brief: ResearchBrief
    comparables: list[ComparableCompany] = Field(default_factory=list)


class ResearchRequest(BaseModel):
    ticker: str


class ResearchResult(BaseModel):
    ticker: str
    company_name: str
    raw_data: dict = Field(default_factory=dict)
    brief: ResearchBrief
    comparables: list[ComparableCompany] = Field(default_factory=list)
    news_count: int = 0
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    remaining: int


class UsageCounter(BaseModel):
    user_id: str
    usage_count: int = 0
    last_used_at: Optional[datetime] = None


class ResearchUsage(BaseModel):
    remaining: int
    used: int
    max: int
    last_used_at: Optional[datetime] = None


class LLMCallLog(BaseModel):
    step_name: str
    model: str
    system_prompt: str
    user_prompt: str
    response: str
    tokens_used: Optional[int] = None
    duration_ms: Optional[float] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
