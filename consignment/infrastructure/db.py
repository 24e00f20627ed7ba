from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from functools import lru_cache
from typing import Iterator, Optional
from consignment.core_settings import get_settings
from consignment.domain.models import Base

SessionLocal = sessionmaker(autoflush=False, autocommit=False, expire_on_commit=False)

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores FOREIGN KEY clauses unless enabled per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

def create_db_engine(url: str, echo: bool = False, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, echo=echo, future=True, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(url, echo=echo, future=True, pool_pre_ping=True, **kwargs)

@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    return create_db_engine(settings.database_url, echo=settings.SQL_ECHO)

def get_db(engine: Optional[Engine] = None) -> Iterator[Session]:
    db = SessionLocal(bind=engine or get_engine())
    try:
        yield db
    finally:
        db.close()

def init_models(engine: Optional[Engine] = None):
    Base.metadata.create_all(engine or get_engine())
