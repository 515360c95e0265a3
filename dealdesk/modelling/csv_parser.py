import csv
import io
import re

from dealdesk.models.financial import HistoricalFinancialRow


class CSVParseError(Exception):
    """Raised when no historical rows can be read from an upload."""


# Substring match on the normalised header, first hit wins.
_HEADER_FIELDS: list[tuple[tuple[str, ...], str]] = [
    (("period", "date", "year"), "period"),
    (("revenue", "sales"), "revenue"),
    (("cogs", "cost_of_goods", "cost_of_sales"), "cogs"),
    (("gross_profit",), "gross_profit"),
    (("opex", "operating_expense"), "opex"),
    (("depreciation", "d_a"), "depreciation"),
    (("interest",), "interest"),
    (("tax",), "tax"),
    (("net_income", "net_profit"), "net_income"),
    (("ebitda",), "ebitda"),
]


def _parse_financial_value(s: str) -> float | None:
    """Parse a financial value like '$ 587,363', '(6,963)', '31.7%'."""
    s = s.strip().replace('$', '').replace(',', '').replace('\xa0', '').strip()
    if not s or s in ('-', '–', 'N/A', '#N/A', '#n/a'):
        return None
    neg = s.startswith('(') and s.endswith(')')
    if neg:
        s = s[1:-1].strip()
    try:
        if s.endswith('%'):
            val = float(s[:-1]) / 100.0
        else:
            val = float(s)
    except ValueError:
        return None
    return -val if neg else val


def _normalise_header(header: str) -> str:
    return re.sub(r"[^a-z0-9_]", "_", header.strip().lower())


def _field_for(header: str) -> str | None:
    for needles, field in _HEADER_FIELDS:
        if any(n in header for n in needles):
            return field
    return None


def _fill_derived(row: HistoricalFinancialRow) -> HistoricalFinancialRow:
    if row.revenue and row.cogs and not row.gross_profit:
        row.gross_profit = row.revenue - row.cogs
    if row.gross_profit and row.opex and not row.ebitda:
        row.ebitda = row.gross_profit - row.opex + (row.depreciation or 0.0)
    return row


def parse_historical_csv(text: str) -> list[HistoricalFinancialRow]:
    """Read a historical income statement, one period per row, most recent last."""
    rows = [r for r in csv.reader(io.StringIO(text.strip())) if any(c.strip() for c in r)]
    if len(rows) < 2:
        raise CSVParseError("Failed to parse CSV data")

    headers = [_normalise_header(h) for h in rows[0]]
    parsed: list[HistoricalFinancialRow] = []

    for values in rows[1:]:
        row = HistoricalFinancialRow()
        for idx, header in enumerate(headers):
            raw = values[idx].strip() if idx < len(values) else ""
            field = _field_for(header)
            if field == "period":
                row.period = raw
            elif field is not None:
                setattr(row, field, _parse_financial_value(raw) or 0.0)
            elif header:
                num = _parse_financial_value(raw)
                row.extra[header] = num if num is not None else raw
        parsed.append(_fill_derived(row))

    if not parsed:
        raise CSVParseError("Failed to parse CSV data")
    return parsed


def parse_historical_json(payload: object) -> list[HistoricalFinancialRow]:
    """Accept a JSON list of row objects, or {"rows": [...]}."""
    if isinstance(payload, dict):
        payload = payload.get("rows") or payload.get("historical_rows")
    if not isinstance(payload, list) or not payload:
        raise CSVParseError("Failed to parse CSV data")
    try:
        return [_fill_derived(HistoricalFinancialRow.model_validate(item)) for item in payload]
    except ValueError as e:
        raise CSVParseError(f"Failed to parse CSV data: {e}") from e
