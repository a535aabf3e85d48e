from sqlmodel import SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from odontomind.config import DATABASE_URL


def make_engine(url: str = DATABASE_URL):
    # An in-memory SQLite database lives as long as its single connection.
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False)


engine = make_engine()


def create_db_and_tables(bind=None):
    SQLModel.metadata.create_all(bind or engine)
