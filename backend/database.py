from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_size": 10, "pool_pre_ping": True}


engine = create_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    # Model modules register their tables on Base when imported.
    from backend.models import appointment, availability, doctor, user  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_tables() -> None:
    from backend.models import appointment, availability, doctor, user  # noqa: F401

    Base.metadata.drop_all(bind=engine)
