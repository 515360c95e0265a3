import logging

from dealdesk.models.financial import (
    DCFModelOutput, DCFSummary, FinancialAssumptions, ForecastRow,
    HistoricalFinancialRow, ModelChecks, SensitivityCell,
)

logger = logging.getLogger(__name__)

FALLBACK_BASE_REVENUE = 1_000_000.0
FALLBACK_GROWTH_RATE = 0.05
GROSS_MARGIN_BUFFER = 0.10  # gross margin sits 10pp above operating margin
OPEX_PERCENT = 0.10
WORKING_CAPITAL_PERCENT_OF_CHANGE = 0.10

WACC_DELTAS = [-0.01, 0.0, 0.01]
TGR_DELTAS = [-0.005, 0.0, 0.005]


class InvalidAssumptionsError(Exception):
    """Raised when assumptions would make the terminal value undefined."""


def validate_assumptions(assumptions: FinancialAssumptions) -> None:
    if assumptions.forecast_horizon < 1:
        raise InvalidAssumptionsError(
            f"Forecast horizon must be at least 1 year (got {assumptions.forecast_horizon})"
        )
    if assumptions.wacc <= assumptions.terminal_growth_rate:
        raise InvalidAssumptionsError(
            f"WACC ({assumptions.wacc}) must be greater than terminal growth rate "
            f"({assumptions.terminal_growth_rate})"
        )


def growth_rate_for_year(rates: list[float], year: int) -> float:
    """Year-specific rate, else the first configured rate, else the fallback."""
    if year - 1 < len(rates):
        return rates[year - 1]
    if rates:
        return rates[0]
    return FALLBACK_GROWTH_RATE


def _forecast(base_revenue: float, a: FinancialAssumptions) -> list[dict]:
    rows: list[dict] = []
    prev_revenue = base_revenue

    for year in range(1, a.forecast_horizon + 1):
        revenue = prev_revenue * (1 + growth_rate_for_year(a.revenue_growth_rates, year))
        cogs = revenue * (1 - a.operating_margin - GROSS_MARGIN_BUFFER)
        gross_profit = revenue - cogs
        opex = revenue * OPEX_PERCENT
        depreciation = revenue * a.depreciation_percent
        ebitda = gross_profit - opex + depreciation
        ebit = ebitda - depreciation
        tax = ebit * a.tax_rate
        net_income = ebit - tax

        nopat = ebit * (1 - a.tax_rate)
        capex = revenue * a.capex_percent
        wc_change = 0.0 if year == 1 else (revenue - prev_revenue) * WORKING_CAPITAL_PERCENT_OF_CHANGE
        fcf = nopat + depreciation - capex - wc_change

        rows.append({
            "period": f"FY+{year}",
            "revenue": revenue,
            "cogs": cogs,
            "gross_profit": gross_profit,
            "opex": opex,
            "depreciation": depreciation,
            "ebitda": ebitda,
            "ebit": ebit,
            "interest": 0.0,
            "tax": tax,
            "net_income": net_income,
            "nopat": nopat,
            "capex": capex,
            "working_capital_change": wc_change,
            "free_cash_flow": fcf,
        })
        prev_revenue = revenue

    return rows


def _compute_ev(fcfs: list[float], wacc: float, tgr: float) -> tuple[float, float, float, float]:
    """Returns (enterprise_value, pv_of_fcfs, terminal_value, discounted_terminal_value)."""
    n_years = len(fcfs)
    pv_fcfs = sum(fcf / (1 + wacc) ** (i + 1) for i, fcf in enumerate(fcfs))

    terminal_value = fcfs[-1] * (1 + tgr) / (wacc - tgr)
    pv_terminal = terminal_value / (1 + wacc) ** n_years

    return pv_fcfs + pv_terminal, pv_fcfs, terminal_value, pv_terminal


def _compute_sensitivity_matrix(
    fcfs: list[float],
    base_wacc: float,
    base_tgr: float,
    warnings: list[str],
) -> list[list[SensitivityCell]]:
    """3x3 grid: WACC +/-1% by TGR +/-0.5%. Cells with WACC <= TGR carry no value."""
    matrix: list[list[SensitivityCell]] = []
    for wacc_delta in WACC_DELTAS:
        row: list[SensitivityCell] = []
        for tgr_delta in TGR_DELTAS:
            w = base_wacc + wacc_delta
            t = base_tgr + tgr_delta
            if w <= t:
                warnings.append(f"Sensitivity cell skipped: WACC {w:.2%} <= terminal growth {t:.2%}")
                row.append(SensitivityCell(wacc=w, terminal_growth_rate=t, enterprise_value=None))
                continue
            ev, _, _, _ = _compute_ev(fcfs, w, t)
            row.append(SensitivityCell(wacc=w, terminal_growth_rate=t, enterprise_value=ev))
        matrix.append(row)
    return matrix


def compute_dcf(
    historical_rows: list[HistoricalFinancialRow],
    assumptions: FinancialAssumptions,
) -> DCFModelOutput:
    """Project the income statement forward, discount free cash flow and value the business."""
    validate_assumptions(assumptions)
    warnings: list[str] = []

    latest = historical_rows[-1] if historical_rows else None
    if latest is None or not latest.revenue:
        warnings.append("Missing revenue data in historical financials")
        base_revenue = FALLBACK_BASE_REVENUE
    else:
        base_revenue = latest.revenue

    wacc = assumptions.wacc
    tgr = assumptions.terminal_growth_rate

    rows = _forecast(base_revenue, assumptions)
    fcfs = [r["free_cash_flow"] for r in rows]
    enterprise_value, pv_fcfs, terminal_value, pv_terminal = _compute_ev(fcfs, wacc, tgr)

    forecasted_income = [
        ForecastRow(**r, discounted_free_cash_flow=r["free_cash_flow"] / (1 + wacc) ** (i + 1))
        for i, r in enumerate(rows)
    ]

    sensitivity_matrix = _compute_sensitivity_matrix(fcfs, wacc, tgr, warnings)

    logger.info(
        f"DCF computed: base_revenue=${base_revenue:,.0f}, horizon={assumptions.forecast_horizon}, "
        f"WACC={wacc:.2%}, TGR={tgr:.2%}, EV=${enterprise_value:,.0f}"
    )

    return DCFModelOutput(
        forecasted_income=forecasted_income,
        dcf=DCFSummary(
            npv=enterprise_value,
            wacc=wacc,
            terminal_growth_rate=tgr,
            terminal_value=terminal_value,
            discounted_terminal_value=pv_terminal,
            pv_of_fcfs=pv_fcfs,
            enterprise_value=enterprise_value,
            free_cash_flows=fcfs,
            sensitivity_matrix=sensitivity_matrix,
        ),
        checks=ModelChecks(balanced=not warnings, warnings=warnings),
    )
