import os

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from clinic_backend.database import init_db  # noqa: E402


@pytest.fixture
def session_factory(tmp_path):
    # File-backed so that worker threads each get their own connection.
    engine = create_engine(f'sqlite:///{tmp_path / "scheduling.db"}')
    init_db(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory, monkeypatch: pytest.MonkeyPatch):
    from fastapi.testclient import TestClient

    from clinic_backend.database import get_db
    from clinic_backend.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr('clinic_backend.routes.availability_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('clinic_backend.routes.appointment_routes.ensure_database_ready', lambda: None)
    app.dependency_overrides[get_db] = override_get_db
    try:
        # Not used as a context manager so the startup hook never touches DATABASE_URL.
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from clinic_backend.auth.jwt_handler import create_access_token

    def build(user_id: int, role: str) -> dict[str, str]:
        return {'Authorization': f'Bearer {create_access_token(user_id, role)}'}

    return build
