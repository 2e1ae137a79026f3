"""Database engine and session factory"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from bookstream.core.config import settings


def create_db_engine(database_url: str, **kwargs) -> Engine:
    """
    Build an engine for *database_url*.

    SQLite connections are switched to ``BEGIN IMMEDIATE`` so every
    transaction takes the database write lock up front. That gives the
    count-then-insert sequences the same serialization PostgreSQL gets
    from ``SELECT ... FOR UPDATE``.
    """
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        engine = create_engine(database_url, connect_args=connect_args, **kwargs)

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = create_session_factory(engine)
