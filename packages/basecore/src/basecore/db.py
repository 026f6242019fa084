import functools

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from basecore.settings import get_settings


@functools.lru_cache()
def get_engine():
    """
    Get SQLAlchemy engine (cached).

    Built from DATABASE_URL on first use. Only the admin CLI uses this; the API
    wires its own engine in build_gateway_service().
    """
    settings = get_settings()
    return create_db_engine(settings.DATABASE_URL)


def create_db_engine(database_url: str):
    """
    Create an engine for the given URL.

    SQLite connections are used from worker threads, so the same-thread
    check is disabled for them.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, pool_pre_ping=True, echo=False, connect_args=connect_args)


@functools.lru_cache()
def get_sessionmaker():
    """
    Sessionmaker bound to get_engine() (cached). Used by the admin CLI.
    """
    engine = get_engine()
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

