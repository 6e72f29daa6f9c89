import sys
import importlib
import pytest


def _load_app(monkeypatch):
    monkeypatch.setenv("APP_ENV", "testing")
    for m in ["main", "app.config", "app.test_support"]:
        if m in sys.modules:
            del sys.modules[m]
    import main as entry
    importlib.reload(entry)
    return entry.app


def test_test_support_unversioned_still_works(monkeypatch):
    app = _load_app(monkeypatch)
    c = app.test_client()
    r = c.get("/__ok")
    assert r.status_code == 200
    js = r.get_json()
    assert js["status"] == "success"
    assert js["data"]["ping"] == "pong"


def test_test_support_also_available_under_api_v1(monkeypatch):
    app = _load_app(monkeypatch)
    c = app.test_client()
    r = c.get("/api/v1/test_support/__ok")
    assert r.status_code == 200
    assert r.get_json()["data"]["ping"] == "pong"


@pytest.mark.parametrize("prefix", ["/api/v1/cart", "/api/v1/orders", "/api/v1/chats", "/api/v1/wallet"])
def test_url_map_contains_commerce_blueprints(monkeypatch, prefix):
    app = _load_app(monkeypatch)
    rules = {str(r.rule) for r in app.url_map.iter_rules()}
    assert any(rule.startswith(prefix) for rule in rules)
