from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from codebyte.core import config

connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(config.DATABASE_URL, connect_args=connect_args)

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


def init_db() -> None:
    # Import the mapped classes so every table is registered on Base.metadata.
    from codebyte.models import category, course, documentation, purchase, user  # noqa: F401

    Base.metadata.create_all(bind=engine)
