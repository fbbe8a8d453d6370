"""Shared wiring for API and repository tests: in-memory database, app client, users and tokens."""

from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.database import get_db
from app.core.security import create_access_token, hash_password
from app.main import create_app
from app.models import Base, User, UserRole
from app.schemas.auth import TokenClaims
from app.services.protection import ProtectionClient
from app.services.users import insert_user

DEFAULT_PASSWORD = "secret123"


def make_session_factory() -> sessionmaker:
    """Fresh in-memory SQLite database with the schema created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_client(
    session_factory: sessionmaker,
    settings: Settings | None = None,
    protection_client: ProtectionClient | None = None,
    raise_server_exceptions: bool = True,
) -> TestClient:
    """TestClient for a new app whose get_db yields sessions from session_factory."""
    if settings is None:
        settings = Settings(PROTECTION_ENABLED=False)
    app = create_app(settings=settings, protection_client=protection_client)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app, raise_server_exceptions=raise_server_exceptions)


def make_user(
    session_factory: sessionmaker,
    *,
    name: str = "Test User",
    email: str = "user@example.com",
    password: str = DEFAULT_PASSWORD,
    role: UserRole = UserRole.USER,
) -> User:
    """Insert a user directly through the repository and return the stored row."""
    with session_factory() as db:
        return insert_user(
            db,
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=role,
        )


def token_for(user: User, expires_delta: timedelta | None = None) -> str:
    return create_access_token(
        TokenClaims(id=user.id, email=user.email, role=user.role),
        expires_delta=expires_delta,
    )


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}
