import os

# Point the app's own engine at an in-memory database before it is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, select  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api.deps import get_db  # noqa: E402
from app.core.security import create_access_token, get_password_hash  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.bootstrap import provision_core_rbac  # noqa: E402
from app.main import app  # noqa: E402
from app.models.rbac import Role  # noqa: E402
from app.models.user import User  # noqa: E402

DEFAULT_PASSWORD = "password123"


@pytest.fixture()
def session_factory():
    # One shared connection so the test session and request sessions see the same data.
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    provision_core_rbac(db)
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory, db_session):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session):
    def _make_user(email: str, *role_names: str, name: str | None = None, is_active: bool = True) -> User:
        user = User(
            name=name or email.split("@")[0].title(),
            email=email,
            hashed_password=get_password_hash(DEFAULT_PASSWORD),
            department="Administration",
            is_active=is_active,
        )
        for role_name in role_names:
            role = db_session.execute(select(Role).where(Role.name == role_name)).scalar_one()
            user.roles.append(role)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def admin_user(make_user):
    return make_user("admin@example.com", "Admin", name="Admin User")


@pytest.fixture()
def headers_for():
    def _headers_for(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers_for


@pytest.fixture()
def admin_headers(admin_user, headers_for):
    return headers_for(admin_user)
