import os
import sys
from decimal import Decimal
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault('CELERY_TASK_ALWAYS_EAGER', '1')
from models import db
from models.user import UserProfile
from models.product import Product


@pytest.fixture(scope='session')
def app_instance():
    os.environ.setdefault('APP_ENV', 'testing')
    os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
    from app import create_app
    app = create_app()
    app.config.update(
        TESTING=True,
        SQLALCHEMY_DATABASE_URI='sqlite:///:memory:',
        SQLALCHEMY_TRACK_MODIFICATIONS=False
    )
    return app


@pytest.fixture(scope='function')
def app(app_instance):
    with app_instance.app_context():
        db.drop_all()
        db.create_all()
        yield app_instance
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make(user_id, coins=0, escrow=0, bank=False, loyalty_pct=0, name=None):
        user = UserProfile(
            id=user_id,
            display_name=name or f"user{user_id}",
            coin_balance=coins,
            escrow_balance=Decimal(str(escrow)),
            loyalty_enabled=loyalty_pct > 0,
            loyalty_percentage=loyalty_pct,
        )
        if bank:
            user.bank_name = "Test Bank"
            user.account_number = "0123456789"
            user.account_name = f"User {user_id}"
            user.recipient_code = f"RCP_{user_id}"
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_product(app):
    def _make(seller_id, price, stock=100, name="Widget", active=True):
        product = Product(
            seller_id=seller_id,
            name=name,
            price=Decimal(str(price)),
            stock_quantity=stock,
            is_active=active,
        )
        db.session.add(product)
        db.session.commit()
        return product
    return _make


@pytest.fixture()
def auth_header(client):
    def _login(user_id, **extra):
        resp = client.post("/__auth/login_stub", json={"user_id": user_id, **extra})
        return {"Authorization": f"Bearer {resp.get_json()['data']['access']}"}
    return _login
