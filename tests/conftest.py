"""
Shared fixtures: in-memory SQLite ต่อ test, session, TestClient ที่ override auth
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from deps.auth import get_current_user, get_password_hash
from models import Role, User, UserRole
from services import shipment_ledger


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


def _make_user(db, username, roles=(), superuser=False):
    user = User(
        username=username,
        password_hash=get_password_hash("secret123"),
        is_active=True,
        is_superuser=superuser,
    )
    db.add(user)
    db.flush()
    for code in roles:
        role = db.query(Role).filter(Role.code == code).first()
        if role is None:
            role = Role(code=code, name=code.title())
            db.add(role)
            db.flush()
        db.add(UserRole(user_id=user.id, role_id=role.id))
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_user(db):
    def factory(username, roles=(), superuser=False):
        return _make_user(db, username, roles, superuser)
    return factory


@pytest.fixture
def admin(make_user):
    return make_user("admin", roles=("admin",), superuser=True)


@pytest.fixture
def app(db):
    from main import app as fastapi_app

    def _get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = _get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client_as(app, db):
    """client_as(user) -> TestClient ที่ล็อกอินเป็น user นั้น"""
    def factory(user):
        app.dependency_overrides[get_current_user] = lambda: db.get(User, user.id)
        return TestClient(app)
    return factory


@pytest.fixture
def client(client_as, admin):
    return client_as(admin)


@pytest.fixture
def make_shipment(db):
    counter = {"n": 0}

    def factory(customer_name="PT. Maju Jaya", nominal="1000000", **kw):
        counter["n"] += 1
        data = {
            "spb_number": kw.pop("spb_number", f"SPB-{counter['n']:04d}"),
            "customer_name": customer_name,
            "origin": kw.pop("origin", "Jakarta"),
            "destination": kw.pop("destination", "Surabaya"),
            "macam_barang": kw.pop("macam_barang", "Sparepart"),
            "total_colli": kw.pop("total_colli", 2),
            "berat": Decimal(kw.pop("berat", "25")),
            "nominal": Decimal(nominal),
            "status": kw.pop("status", "READY"),
        }
        data.update(kw)
        return shipment_ledger.create_shipment(db, data)
    return factory
