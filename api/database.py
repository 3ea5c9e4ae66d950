from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def get_engine(database_url: str, connect_timeout: float = 10):
    """Build an engine for DATABASE_URL.

    SQLite URLs (local runs and tests) share one connection across threads;
    anything else gets a pooled engine with a bounded connect timeout.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    connect_args = {}
    if database_url.startswith("postgresql"):
        connect_args["connect_timeout"] = int(connect_timeout)

    return create_engine(
        database_url,
        pool_size=5,            # Base connections kept open
        max_overflow=10,        # Additional connections when pool is full
        pool_timeout=connect_timeout,
        pool_pre_ping=True,     # Check connections are alive before using
        connect_args=connect_args,
    )


def get_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
