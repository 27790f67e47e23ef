"""Smoke tests for the foliotrack command line."""

import json

import pytest

from foliotrack.cli.history import calculate_return_columns
from foliotrack.cli.main import build_parser, main
from foliotrack.currency import FxData
from foliotrack.history import calculate_portfolio_history
from foliotrack.portfolio import HistoryPoint, Security, normalize_transaction


PROJECT = {
    "name": "CLI Depot",
    "portfolios": [{"id": "p1", "name": "Main"}],
    "transactions": [
        {"id": "t1", "date": "2024-01-01", "type": "Deposit", "amount": 1000, "currency": "EUR", "portfolioId": "p1"},
        {"id": "t2", "date": "2024-01-02", "type": "Buy", "isin": "IE00TEST0001", "shares": 10,
         "amount": 500, "currency": "EUR", "portfolioId": "p1"},
    ],
    "securities": [
        {"isin": "IE00TEST0001", "name": "World ETF", "currency": "EUR",
         "priceHistory": {"2024-01-02": 50, "2024-01-05": 55, "2024-01-10": 52}},
    ],
}


@pytest.fixture
def project_file(tmp_path):
    path = tmp_path / "project.json"
    path.write_text(json.dumps(PROJECT), encoding="utf-8")
    return str(path)


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage: foliotrack" in capsys.readouterr().out


def test_version(capsys):
    assert main(["version"]) == 0
    assert "Version:" in capsys.readouterr().out


def test_history_command(project_file, capsys):
    code = main(["history", project_file, "-d", "2024-01-10", "-r", "MAX", "-g", "daily"])
    output = capsys.readouterr().out

    assert code == 0
    assert "Value:" in output
    assert "1,020.00 EUR" in output


def test_holdings_command(project_file, capsys):
    assert main(["holdings", project_file, "-d", "2024-01-10"]) == 0
    assert "Summary" in capsys.readouterr().out


def test_metrics_command_with_benchmark(project_file, capsys):
    assert main(["metrics", project_file, "-d", "2024-01-10", "-b", "IE00TEST0001", "-b", "UNKNOWN"]) == 0
    assert "Summary" in capsys.readouterr().out


def test_missing_file_returns_error(tmp_path, capsys):
    assert main(["history", str(tmp_path / "missing.json")]) == 1
    assert "Error:" in capsys.readouterr().out


def test_invalid_date_returns_error(project_file, capsys):
    assert main(["holdings", project_file, "-d", "10.01.2024"]) == 1
    assert "Invalid date format" in capsys.readouterr().out


def test_parser_defaults():
    args = build_parser().parse_args(["history", "project.json"])
    assert args.time_range == "1J"
    assert args.granularity == "weekly"
    assert args.portfolio == []


def test_return_columns_agree_for_lump_sum_at_inception():
    """Verify TWR and MWR both include the first valuation's gain over the full range."""
    transactions = [normalize_transaction({
        "id": "b1", "date": "2024-01-01", "type": "Buy", "isin": "IE00TEST0001",
        "shares": 1, "amount": 100, "currency": "EUR",
    })]
    security = Security(isin="IE00TEST0001", name="World ETF", currency="EUR",
                        price_history={"2024-01-01": 105, "2024-01-02": 110})
    history = calculate_portfolio_history(
        transactions, [security], FxData(), time_range="MAX", granularity="daily", as_of="2024-01-02",
    )

    twr, mwr = calculate_return_columns(history, transactions, is_full_range=True)

    assert [p.value for p in twr] == pytest.approx([5, 10])
    assert [p.value for p in mwr] == pytest.approx([5, 10])


def test_return_columns_start_at_zero_after_inception():
    transactions = [normalize_transaction({"date": "2023-06-01", "type": "Deposit", "amount": 100, "currency": "EUR"})]
    history = [
        HistoryPoint(date="2024-01-01", value=105, invested=100),
        HistoryPoint(date="2024-01-02", value=110, invested=100),
    ]
    twr, mwr = calculate_return_columns(history, transactions)
    assert twr[0].value == 0.0
    assert mwr[0].value == 0.0
    assert twr[-1].value == pytest.approx(mwr[-1].value)
