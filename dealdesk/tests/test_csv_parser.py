import pytest
from dealdesk.modelling.csv_parser import CSVParseError, parse_historical_csv, parse_historical_json

INCOME_CSV = """Year,Total Revenue,COGS,Operating Expenses,Depreciation,Net Income,Headcount
2022,"$1,000",400,300,50,120,45
2023,1200,480,350,60,(15),n/a
"""


def test_parses_rows_in_order():
    rows = parse_historical_csv(INCOME_CSV)
    assert [r.period for r in rows] == ["2022", "2023"]
    assert rows[0].revenue == 1000.0
    assert rows[0].cogs == 400.0
    assert rows[0].opex == 300.0
    assert rows[0].depreciation == 50.0
    assert rows[0].net_income == 120.0


def test_derives_gross_profit_and_ebitda():
    first = parse_historical_csv(INCOME_CSV)[0]
    assert first.gross_profit == 600.0
    assert first.ebitda == 600.0 - 300.0 + 50.0


def test_parenthesised_values_are_negative():
    assert parse_historical_csv(INCOME_CSV)[1].net_income == -15.0


def test_unknown_columns_go_to_extra():
    rows = parse_historical_csv(INCOME_CSV)
    assert rows[0].extra == {"headcount": 45.0}
    assert rows[1].extra == {"headcount": "n/a"}


def test_unparseable_numeric_cell_becomes_zero():
    rows = parse_historical_csv("period,revenue\nFY23,abc\n")
    assert rows[0].revenue == 0.0


def test_explicit_columns_are_not_overwritten():
    rows = parse_historical_csv("period,revenue,cogs,gross_profit,ebitda\nFY23,100,40,70,20\n")
    assert rows[0].gross_profit == 70.0
    assert rows[0].ebitda == 20.0


def test_blank_lines_ignored():
    rows = parse_historical_csv("\nperiod,sales\n\nFY22,10\n\nFY23,12\n")
    assert [r.revenue for r in rows] == [10.0, 12.0]


@pytest.mark.parametrize("text", ["", "period,revenue\n", "   \n\n"])
def test_no_data_rows_fails(text):
    with pytest.raises(CSVParseError, match="Failed to parse CSV data"):
        parse_historical_csv(text)


def test_json_rows_accepted():
    rows = parse_historical_json({"rows": [{"period": "FY23", "revenue": 100, "cogs": 30}]})
    assert rows[0].revenue == 100.0
    assert rows[0].gross_profit == 70.0


def test_json_rejects_non_list():
    with pytest.raises(CSVParseError):
        parse_historical_json({"foo": "bar"})


def test_json_rejects_bad_rows():
    with pytest.raises(CSVParseError):
        parse_historical_json([{"period": "FY23", "revenue": "lots"}])
