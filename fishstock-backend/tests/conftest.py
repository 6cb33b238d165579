import pytest
import os
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

import fishstock.models  # noqa: F401
from fishstock.core.deps import get_db
from fishstock.core.security_current import Actor
from fishstock.db.base import Base
from fishstock.main import app
from fishstock.models.product import Product

OWNER = Actor(id="owner-1", role="owner")
MANAGER = Actor(id="manager-1", role="manager")
EMPLOYEE = Actor(id="employee-1", role="employee")
OTHER_EMPLOYEE = Actor(id="employee-2", role="employee")


def actor_headers(actor: Actor) -> dict[str, str]:
    return {"X-Actor-Id": actor.id, "X-Actor-Role": actor.role}


def make_product(db, **overrides) -> Product:
    values = {
        "name": "Tilapia",
        "category": "fresh",
        "quantity_box": 10,
        "quantity_kg": Decimal("5.00"),
        "box_to_kg_ratio": Decimal("20.00"),
        "cost_per_box": Decimal("300.00"),
        "cost_per_kg": Decimal("16.00"),
        "price_per_box": Decimal("400.00"),
        "price_per_kg": Decimal("22.00"),
        "boxed_low_stock_threshold": 2,
    }
    values.update(overrides)
    product = Product(**values)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture()
def test_context():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def session_factory(tmp_path):
    # File-backed so separate sessions get separate connections.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'fishstock.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
