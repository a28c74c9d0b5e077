from app.services.ledger_reliability import BalanceDrift, find_balance_drifts, reconciliation_status


def test_find_balance_drifts_reports_only_mismatches() -> None:
    drifts = find_balance_drifts([(1, 100, 100), (2, 50, 40), (3, 0, 10)])

    assert [drift.user_id for drift in drifts] == [2, 3]
    assert drifts[0].delta == -10
    assert drifts[1].delta == 10


def test_reconciliation_status() -> None:
    assert reconciliation_status(0) == "OK"
    assert reconciliation_status(3) == "DIFF"


def test_balance_drift_delta() -> None:
    assert BalanceDrift(user_id=1, cached_balance=5, ledger_balance=8).delta == 3
