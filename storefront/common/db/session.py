from contextlib import contextmanager
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..models import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the engine and hands out unit-of-work sessions."""

    def __init__(self, database_url: str, echo: bool = False):
        kwargs = {"future": True, "echo": echo}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
                # one shared connection, otherwise every session sees an empty database
                kwargs["poolclass"] = StaticPool
            else:
                db_path = database_url.split("sqlite:///")[-1]
                try:
                    Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
                except OSError:
                    # real error will surface on connect if still invalid
                    pass
        self.engine = create_engine(database_url, **kwargs)
        if database_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._session_local = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False, future=True)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self):
        session = self._session_local()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
