import os
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('RATE_LIMIT_ENABLED', 'true')

from backend.auth import jwt_handler  # noqa: E402
from backend.auth.dependencies import Principal  # noqa: E402
from backend.auth.passwords import hash_password  # noqa: E402
from backend.core.rate_limit import reset_rate_limits  # noqa: E402
from backend.database import Base, get_db  # noqa: E402
from backend.main import app  # noqa: E402
from backend.models.availability import Availability  # noqa: E402
from backend.models.doctor import DoctorProfile  # noqa: E402
from backend.models.user import User  # noqa: E402


@pytest.fixture(autouse=True)
def clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def db_session():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    def factory(username: str, role: str = 'patient', password: str = 'secret-password', **fields) -> User:
        user = User(
            username=username,
            email=fields.pop('email', f'{username}@example.com'),
            hashed_password=hash_password(password),
            role=role,
            name=fields.pop('name', username.title()),
            location=fields.pop('location', ''),
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture
def make_doctor(db_session, make_user):
    def factory(
        username: str = 'dr_john',
        specialization: str = 'Pediatrics',
        availability: dict[date, list[str]] | None = None,
    ) -> DoctorProfile:
        user = make_user(username, role='doctor')
        doctor = DoctorProfile(
            user_id=user.id,
            specialization=specialization,
            availability=[
                Availability(date=day, slots=slots)
                for day, slots in (availability or {}).items()
            ],
        )
        db_session.add(doctor)
        db_session.commit()
        db_session.refresh(doctor)
        return doctor

    return factory


@pytest.fixture
def principal_for():
    def factory(user: User) -> Principal:
        return Principal(id=user.id, role=user.role, user=user)

    return factory


@pytest.fixture
def auth_headers():
    def factory(user: User) -> dict[str, str]:
        token = jwt_handler.create_access_token(subject=str(user.id), role=user.role)
        return {'Authorization': f'Bearer {token}'}

    return factory
