from decimal import Decimal

import pytest

from app.core.database import build_engine, create_tables
from app.core.errors import LedgerConflictError
from app.modules.credits.repository import CreditLedger, quantize_credits


def test_unknown_identity_reads_zero(engine):
    balance = CreditLedger(engine).get_balance("nobody@example.com")

    assert balance["balance_credits"] == 0
    assert balance["updated_at"] is None


def test_adjustments_clamp_at_zero_and_round(engine):
    ledger = CreditLedger(engine)

    ledger.adjust_balance("a@example.com", 5)
    ledger.adjust_balance("a@example.com", -10)
    ledger.adjust_balance("a@example.com", "2.5")
    final = ledger.adjust_balance("a@example.com", "0.0005")

    assert final["balance_credits"] == 2.501


def test_set_balance_overrides(engine):
    ledger = CreditLedger(engine)
    ledger.adjust_balance("a@example.com", 3)

    assert ledger.set_balance("a@example.com", 10)["balance_credits"] == 10
    assert ledger.set_balance("a@example.com", -4)["balance_credits"] == 0
    assert ledger.get_balance("a@example.com")["balance_credits"] == 0


def test_transactions_record_applied_amounts_newest_first(engine):
    ledger = CreditLedger(engine)
    ledger.set_balance("a@example.com", 1, reason="admin_set")
    ledger.adjust_balance("a@example.com", -3, reason="usage")

    items = ledger.list_transactions("a@example.com")

    assert [item["reason"] for item in items] == ["usage", "admin_set"]
    assert items[0]["amount_credits"] == -1
    assert items[0]["balance_after"] == 0


def test_quantize_credits_rounds_half_up():
    assert quantize_credits("0.0005") == Decimal("0.001")
    assert quantize_credits("-1") == Decimal("0")


@pytest.fixture()
def file_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


def test_concurrent_update_is_retried_not_lost(file_engine):
    ledger = CreditLedger(file_engine)
    ledger.set_balance("a@example.com", 10)
    interfered = []

    def compute(old):
        if not interfered:
            interfered.append(old)
            CreditLedger(file_engine).adjust_balance("a@example.com", -3)
        return old - 1

    result = ledger._write("a@example.com", compute, "usage", None)

    assert interfered == [Decimal("10.000")]
    assert result["balance_credits"] == 6
    assert ledger.get_balance("a@example.com")["balance_credits"] == 6


def test_concurrent_first_write_is_retried(file_engine):
    ledger = CreditLedger(file_engine)
    interfered = []

    def compute(old):
        if not interfered:
            interfered.append(old)
            CreditLedger(file_engine).adjust_balance("new@example.com", 4)
        return old + 1

    result = ledger._write("new@example.com", compute, "grant", None)

    assert result["balance_credits"] == 5


def test_exhausted_retries_raise_conflict(file_engine):
    ledger = CreditLedger(file_engine, max_attempts=2)
    ledger.set_balance("a@example.com", 10)

    def compute(old):
        CreditLedger(file_engine).adjust_balance("a@example.com", -1)
        return old - 1

    with pytest.raises(LedgerConflictError):
        ledger._write("a@example.com", compute, "usage", None)
