"""
Pytest fixtures for order gate backend tests.

Provides test database setup, catalog fixtures, an injectable clock for the
rate limiter, and the Flask test client.
"""

import pytest
from order_gate import create_app
from order_gate.actors import Actor
from order_gate.extensions import db
from order_gate.models import Product, ProductPrice, ProductVariant
from order_gate.services.blacklist_service import BlacklistStore
from order_gate.services.concurrency import KeyedLocks
from order_gate.services.fraud_service import FraudScorer
from order_gate.services.intake_service import OrderIntakeService
from order_gate.services.rate_limit_service import RateLimiter
from order_gate.services.stock_service import MOVEMENT_IN, post_movement
from order_gate.validation import OrderRequest


ADMIN_TOKEN = "test-admin-token"
OPERATOR = Actor(id="op-1", name="Operator One")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_API_TOKEN': ADMIN_TOKEN,
        'RATE_LIMIT_WINDOW_SECONDS': 60,
        'RATE_LIMIT_MAX_REQUESTS': 10,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database (and fresh limiter state) for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions["rate_limiter"].reset()

        yield db.session

        # Cleanup after test
        db.session.rollback()


class FakeClock:
    """Monotonic clock stand-in; only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope='function')
def clock():
    return FakeClock()


@pytest.fixture(scope='function')
def limiter(clock):
    return RateLimiter(window_seconds=60, max_requests=10, clock=clock)


@pytest.fixture(scope='function')
def intake(db_session, limiter):
    """Intake service wired like the app, but with a controllable clock."""
    return OrderIntakeService(
        rate_limiter=limiter,
        blacklist=BlacklistStore(),
        scorer=FraudScorer(),
        auto_block_score=90,
        ip_locks=KeyedLocks(),
    )


def make_product(db_session, name, variant_names, stock=100):
    product = Product(name=name, is_active=True)
    db_session.add(product)
    db_session.flush()

    for quantity, price_cents, label in ((1, 49900, "Single"), (2, 79900, "Best Value"), (3, 99900, "Family Pack")):
        db_session.add(ProductPrice(product_id=product.id, quantity=quantity, price_cents=price_cents, label=label))

    for variant_name in variant_names:
        variant = ProductVariant(product_id=product.id, variant_name=variant_name)
        db_session.add(variant)
        db_session.flush()
        if stock:
            post_movement(
                product_id=product.id,
                variant_id=variant.id,
                quantity=stock,
                movement_type=MOVEMENT_IN,
                actor=OPERATOR,
                note="Initial stock",
            )

    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session):
    """Product with three price tiers and Black/White variants (100 each)."""
    return make_product(db_session, "Posture Corrector", ["Black", "White"])


@pytest.fixture(scope='function')
def single_variant_product(db_session):
    """Product with exactly one variant, so no selection is needed."""
    return make_product(db_session, "Phone Stand", ["Standard"])


def price_for(product, quantity: int):
    return next(p for p in product.prices if p.quantity == quantity)


def variant_named(product, name: str):
    return next(v for v in product.variants if v.variant_name == name)


def make_request(product, *, quantity=1, ip="198.51.100.10", name="Ayse Yilmaz",
                 phone="05327654321", variant="Black", payment_method="COD") -> OrderRequest:
    """Valid checkout request; override fields to trip individual rules."""
    return OrderRequest(
        product_id=product.id,
        price_id=price_for(product, quantity).id,
        name=name,
        phone=phone,
        address="Ataturk Cad. No 5",
        city="Istanbul",
        district="Kadikoy",
        ip_address=ip,
        payment_method=payment_method,
        variant_selection=variant,
        user_agent="pytest",
        referrer="Direct",
    )


def checkout_payload(product, *, quantity=1, **overrides) -> dict:
    payload = {
        "product_id": product.id,
        "price_id": price_for(product, quantity).id,
        "name": "Ayse Yilmaz",
        "phone": "05327654321",
        "address": "Ataturk Cad. No 5",
        "city": "Istanbul",
        "district": "Kadikoy",
        "variant_selection": "Black",
    }
    payload.update(overrides)
    return payload


def admin_headers(actor_id: str = "op-1", actor_name: str = "Operator One") -> dict:
    """Helper to create admin Authorization headers."""
    return {
        'Authorization': f'Bearer {ADMIN_TOKEN}',
        'X-Actor-Id': actor_id,
        'X-Actor-Name': actor_name,
    }
