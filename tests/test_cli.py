import json
from models import db
from models.coin import CoinTransaction


def test_coins_reconcile_command_repairs(app, make_user):
    make_user(1, coins=30)
    runner = app.test_cli_runner()
    result = runner.invoke(args=["coins-reconcile", "--repair"])
    assert result.exit_code == 0
    summary = json.loads(result.stdout)
    assert summary["drifted"] == 1
    assert summary["repaired"] == 1
    db.session.expire_all()
    assert CoinTransaction.query.filter_by(user_id=1, type="ADJUSTMENT").count() == 1


def test_payouts_scan_command_on_empty_db(app):
    result = app.test_cli_runner().invoke(args=["payouts-scan"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"orders_scanned": 0}


def test_orders_autocomplete_command(app):
    result = app.test_cli_runner().invoke(args=["orders-autocomplete"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"scanned": 0, "completed": 0, "skipped": 0, "errors": 0}
