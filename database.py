from contextlib import contextmanager
from typing import Any, Iterator

from pydantic import TypeAdapter
from sqlalchemy import JSON, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.types import TypeDecorator

from config import get_settings


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    from sqlalchemy import create_engine

    eng = create_engine(settings.database_url, connect_args=connect_args)
    if settings.database_url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


class JSONDocument(TypeDecorator):
    """Stores a pydantic value type (or a list of them) in a JSON column.

    Values are dumped in JSON mode on the way in and validated back into the
    declared type on the way out, so callers only ever see typed documents.
    In-place edits are invisible to the unit of work; call :func:`touch`.
    """

    impl = JSON
    cache_ok = True

    def __init__(self, document_type: Any) -> None:
        super().__init__()
        self.document_type = document_type
        self._adapter = TypeAdapter(document_type)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return self._adapter.dump_python(
            self._adapter.validate_python(value), mode="json"
        )

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self._adapter.validate_python(value)


def touch(instance: object, *attributes: str) -> None:
    for name in attributes:
        flag_modified(instance, name)


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
