"""Shared fixtures: in-memory database, API client with a fake token verifier."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from barstock.database import get_db, init_db
from barstock.errors import AuthError
from barstock.main import app
from barstock.models.product import Product, Stock
from barstock.services.teams import create_team
from barstock.utils.auth import AuthUser, get_token_verifier


class FakeVerifier:
    """Treats the bearer token as the user id; 'expired' and 'garbage' simulate failures."""

    def verify(self, token):
        if token == "expired":
            raise AuthError("Token expired", expired=True)
        if token == "garbage":
            raise AuthError("Invalid token")
        return AuthUser(user_id=token)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_verifier] = lambda: FakeVerifier()
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user_id, team_id=None):
    headers = {"Authorization": f"Bearer {user_id}"}
    if team_id is not None:
        headers["X-Team-Id"] = str(team_id)
    return headers


def make_team(db, owner="owner-1", name="Bar do Zé"):
    return create_team(db, owner, name)


def make_product(db, team, name="Vodka 1L", min_stock_level=0, expiry_tracking=False, **fields):
    product = Product(
        team_id=team.id,
        name=name,
        min_stock_level=min_stock_level,
        expiry_tracking=expiry_tracking,
        **fields,
    )
    product.stock = Stock(quantity=0)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product
