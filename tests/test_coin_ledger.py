from decimal import Decimal
import pytest
from models import db
from models.coin import CoinTransaction
from models.order import Order
from app.errors import InsufficientFunds, NotFound, ValidationError
from app.services.coin_ledger import (
    CoinLedgerService,
    compute_discount,
    loyalty_reward,
    max_discount,
)
from app.tasks.ledger import reconcile_all


def test_max_discount_is_floor_of_five_percent():
    assert max_discount(Decimal("10000")) == 500
    assert max_discount(Decimal("3000")) == 150
    assert max_discount(Decimal("19.99")) == 0
    assert max_discount(Decimal("39.99")) == 1


def test_compute_discount_respects_balance_and_toggle():
    assert compute_discount(Decimal("10000"), 1000, True) == 500
    assert compute_discount(Decimal("10000"), 120, True) == 120
    assert compute_discount(Decimal("10000"), 1000, False) == 0
    assert compute_discount(Decimal("10000"), -5, True) == 0


def test_loyalty_reward_floors():
    assert loyalty_reward(Decimal("1999"), 5) == 99
    assert loyalty_reward(Decimal("1999"), 0) == 0


def test_conditional_debit_writes_spend_row(make_user):
    make_user(1, coins=300)
    new_balance = CoinLedgerService.conditional_debit(1, 120, note="test")
    db.session.commit()
    assert new_balance == 180
    row = CoinTransaction.query.filter_by(user_id=1).one()
    assert (row.type, row.direction, row.amount) == ("SPEND", "debit", 120)


def test_conditional_debit_rejects_overdraw_without_mutation(make_user):
    make_user(1, coins=50)
    with pytest.raises(InsufficientFunds) as exc:
        CoinLedgerService.conditional_debit(1, 51)
    assert exc.value.limit == 50
    db.session.rollback()
    assert CoinLedgerService.balance(1) == 50
    assert CoinTransaction.query.count() == 0


def test_credit_types_and_validation(make_user):
    make_user(1)
    assert CoinLedgerService.credit(1, 40, type="REFUND", note="cancel") == 40
    with pytest.raises(ValidationError):
        CoinLedgerService.credit(1, 10, type="SPEND")
    with pytest.raises(ValidationError):
        CoinLedgerService.credit(1, 0)
    with pytest.raises(NotFound):
        CoinLedgerService.credit(404, 10)


def test_reconcile_detects_and_repairs_drift(make_user):
    make_user(1, coins=100)
    CoinLedgerService.credit(1, 25)
    db.session.commit()

    report = CoinLedgerService.reconcile(1)
    assert report["cached"] == 125
    assert report["ledger"] == 25
    assert report["drift"] == 100
    assert report["repaired"] is False

    report = CoinLedgerService.reconcile(1, repair=True)
    db.session.commit()
    assert report["repaired"] is True
    assert CoinLedgerService.ledger_balance(1) == 125
    assert CoinLedgerService.reconcile(1)["drift"] == 0


def test_reconcile_all_flags_orders_without_spend_row(make_user):
    make_user(1, coins=0)
    make_user(2)
    order = Order(
        buyer_id=1,
        seller_id=2,
        status="pending",
        total_amount=Decimal("90"),
        coin_redeemed=10,
        delivery_address="1 Main St",
    )
    db.session.add(order)
    db.session.commit()

    summary = reconcile_all(repair=False)
    assert summary["users"] == 2
    assert summary["drifted"] == 0
    assert summary["orders_missing_spend"] == [order.id]


def test_reconcile_task_runs_eagerly(make_user):
    from app.tasks.ledger import reconcile_coin_ledger_task
    make_user(1, coins=10)
    summary = reconcile_coin_ledger_task.delay(repair=True).get()
    assert summary["drifted"] == 1
    assert summary["repaired"] == 1
    assert CoinLedgerService.ledger_balance(1) == 10
