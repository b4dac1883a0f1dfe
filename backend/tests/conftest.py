"""
Pytest fixtures for the repair shop backend tests.

Provides the app on an in-memory database, per-test table cleanup, one
establishment with staff in every role, a second establishment for scoping
checks, a client with a vehicle and a small catalog.
"""

import pytest
from oficina import create_app
from oficina.extensions import db
from oficina.models import Establishment, User, Client, Vehicle, CatalogItem


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
        'DB_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh tables for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    db.session.rollback()


def _add(obj):
    db.session.add(obj)
    db.session.commit()
    return obj


@pytest.fixture
def shop(db_session):
    return _add(Establishment(name="Oficina Centro", is_active=True))


@pytest.fixture
def other_shop(db_session):
    return _add(Establishment(name="Oficina Norte", is_active=True))


def _staff(shop, name, role, **extra):
    return _add(User(
        establishment_id=shop.id,
        name=name,
        email=f"{name.lower().replace(' ', '.')}@oficina.test",
        role=role,
        is_active=extra.get("is_active", True),
    ))


@pytest.fixture
def admin(shop):
    return _staff(shop, "Alice Admin", "Administrator")


@pytest.fixture
def manager(shop):
    return _staff(shop, "Gabriel Manager", "Manager")


@pytest.fixture
def attendant(shop):
    return _staff(shop, "Ana Attendant", "Attendant")


@pytest.fixture
def mechanic(shop):
    return _staff(shop, "Marcos Mechanic", "Mechanic")


@pytest.fixture
def assistant(shop):
    return _staff(shop, "Paula Assistant", "Assistant Mechanic")


@pytest.fixture
def outsider(other_shop):
    """Manager of another establishment."""
    return _staff(other_shop, "Otto Outsider", "Manager")


@pytest.fixture
def customer(shop):
    return _add(Client(establishment_id=shop.id, name="Carla Cliente", phone="+55 11 95555-0000"))


@pytest.fixture
def vehicle(shop, customer):
    return _add(Vehicle(
        establishment_id=shop.id,
        client_id=customer.id,
        plate="ABC1D23",
        make="Fiat",
        model="Uno",
    ))


@pytest.fixture
def oil(shop):
    """Product priced 45.90."""
    return _add(CatalogItem(establishment_id=shop.id, kind="product", name="Engine oil 5W30", price_cents=4590))


@pytest.fixture
def filter_part(shop):
    """Product priced 32.50."""
    return _add(CatalogItem(establishment_id=shop.id, kind="product", name="Oil filter", price_cents=3250))


@pytest.fixture
def oil_change(shop):
    """Service priced 80.00."""
    return _add(CatalogItem(establishment_id=shop.id, kind="service", name="Oil change", price_cents=8000))


@pytest.fixture
def staff(admin, manager, attendant, mechanic, assistant):
    return {
        "admin": admin,
        "manager": manager,
        "attendant": attendant,
        "mechanic": mechanic,
        "assistant": assistant,
    }


@pytest.fixture
def order(staff, customer, vehicle):
    """Pending order opened by the attendant."""
    from oficina.services.order_service import create_order
    return create_order(staff["attendant"].id, customer.id, vehicle.id, "Engine noise at idle")


@pytest.fixture
def order_in_progress(order, staff):
    from oficina.services.order_service import accept_pending_order
    return accept_pending_order(order.id, staff["manager"].id, staff["mechanic"].id)


def actor_headers(user) -> dict:
    """Helper to create the identity header the auth layer forwards."""
    return {'X-User-Id': str(user.id)}


@pytest.fixture
def headers():
    return actor_headers
