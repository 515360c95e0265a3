from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class WorkingCapitalDays(BaseModel):
    dso: float = Field(45, description="Days sales outstanding")
    dio: float = Field(60, description="Days inventory outstanding")
    dpo: float = Field(30, description="Days payables outstanding")


class FinancialAssumptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    forecast_horizon: int = Field(5, ge=1, alias="forecastHorizon", description="Number of forecast years")
    revenue_growth_rates: list[float] = Field(
        default_factory=lambda: [0.05, 0.05, 0.04, 0.04, 0.03],
        alias="revenueGrowthRates",
        description="Per-year revenue growth; year t falls back to the first rate when missing",
    )
    operating_margin: float = Field(0.15, ge=0, le=1, alias="operatingMargin")
    tax_rate: float = Field(0.25, ge=0, le=1, alias="taxRate")
    capex_percent: float = Field(0.05, ge=0, le=1, alias="capexPercent", description="CapEx as percent of revenue")
    depreciation_percent: float = Field(0.03, ge=0, le=1, alias="depreciationPercent", description="D&A as percent of revenue")
    wc_days: WorkingCapitalDays = Field(default_factory=WorkingCapitalDays, alias="wcDays")
    terminal_growth_rate: float = Field(0.025, alias="terminalGrowthRate", description="Long-term growth rate for terminal value")
    wacc: float = Field(0.10, ge=0, le=1, description="Weighted average cost of capital")


class HistoricalFinancialRow(BaseModel):
    period: str = ""
    revenue: Optional[float] = None
    cogs: Optional[float] = None
    gross_profit: Optional[float] = None
    opex: Optional[float] = None
    depreciation: Optional[float] = None
    interest: Optional[float] = None
    tax: Optional[float] = None
    net_income: Optional[float] = None
    ebitda: Optional[float] = None
    extra: dict[str, float | str] = Field(default_factory=dict, description="Columns that map to no standard line item")


class ForecastRow(BaseModel):
    period: str
    revenue: float
    cogs: float
    gross_profit: float
    opex: float
    depreciation: float
    ebitda: float
    ebit: float
    interest: float = 0.0
    tax: float
    net_income: float
    nopat: float
    capex: float
    working_capital_change: float
    free_cash_flow: float
    discounted_free_cash_flow: float


class SensitivityCell(BaseModel):
    wacc: float
    terminal_growth_rate: float
    enterprise_value: Optional[float] = Field(None, description="None when WACC <= terminal growth rate for this cell")


class DCFSummary(BaseModel):
    npv: float
    wacc: float
    terminal_growth_rate: float
    terminal_value: float
    discounted_terminal_value: float
    pv_of_fcfs: float
    enterprise_value: float
    free_cash_flows: list[float] = Field(default_factory=list)
    sensitivity_matrix: list[list[SensitivityCell]] = Field(
        default_factory=list, description="Rows by WACC (-1%, 0, +1%), columns by TGR (-0.5%, 0, +0.5%)"
    )


class ModelChecks(BaseModel):
    balanced: bool = True
    warnings: list[str] = Field(default_factory=list)


class DCFModelOutput(BaseModel):
    forecasted_income: list[ForecastRow]
    dcf: DCFSummary
    checks: ModelChecks


class DCFComputeRequest(BaseModel):
    historical_rows: list[HistoricalFinancialRow] = Field(..., min_length=1)
    assumptions: FinancialAssumptions = Field(default_factory=FinancialAssumptions)


class Provenance(BaseModel):
    ticker: str
    company_name: Optional[str] = None
    generated_at: datetime
    agent_version: str = "v1.0.0"


class FinancialModelResult(BaseModel):
    income_table: list[HistoricalFinancialRow]
    forecasted_income: list[ForecastRow]
    assumptions: FinancialAssumptions
    dcf: DCFSummary
    checks: ModelChecks
    provenance: Provenance


class FinancialModelRequest(BaseModel):
    ticker: str = Field(..., min_length=1)
    company_name: Optional[str] = None
    fiscal_year_end: Optional[str] = None
    currency: str = "USD"
    workflow_id: Optional[str] = None
    assumptions: Optional[FinancialAssumptions] = None
    csv_content: str = Field(..., min_length=1, description="Historical income statement as CSV text")


class FinancialModelRun(BaseModel):
    id: str
    user_id: str
    ticker: str
    company_name: Optional[str] = None
    fiscal_year_end: Optional[str] = None
    currency: Optional[str] = None
    workflow_id: Optional[str] = None
    assumptions: Optional[FinancialAssumptions] = None
    status: str = "queued"  # queued, parsing, validating, modelling, generating, done, failed
    error_text: Optional[str] = None
    result: Optional[FinancialModelResult] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class FinancialModelRunSummary(BaseModel):
    id: str
    ticker: str
    company_name: Optional[str] = None
    status: str
    enterprise_value: Optional[float] = None
    created_at: Optional[datetime] = None
