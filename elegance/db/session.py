from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from elegance.core.config import settings


class Base(DeclarativeBase): pass


def make_engine(dsn: str) -> Engine:
    if dsn.startswith("sqlite"):
        # request handlers run in a threadpool
        return create_engine(dsn, connect_args={"check_same_thread": False})
    return create_engine(dsn, pool_pre_ping=True)


engine = make_engine(settings.POSTGRES_DSN)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
