import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, make_url, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config import ConfigurationError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class StoreNotConnected(ConfigurationError):
    pass


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


class Store:
    """Handle on the finance database.

    Nothing touches the database until ``connect()`` has been called; any
    session request before that raises ``StoreNotConnected``.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker[Session]] = None

    @property
    def connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StoreNotConnected("Store is not connected; call connect() first")
        return self._engine

    def connect(self) -> None:
        if self._engine is not None:
            return
        is_sqlite = self.database_url.startswith("sqlite")
        kwargs: dict[str, object] = {}
        if is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.database_url or self.database_url.endswith("://"):
                kwargs["poolclass"] = StaticPool
            else:
                database = make_url(self.database_url).database
                if database:
                    Path(database).parent.mkdir(parents=True, exist_ok=True)
        eng = create_engine(self.database_url, **kwargs)
        if is_sqlite:
            event.listen(eng, "connect", _enable_sqlite_pragmas)

        # models register their tables on Base.metadata at import
        import models  # noqa: F401

        Base.metadata.create_all(eng)
        self._engine = eng
        self._sessionmaker = sessionmaker(
            bind=eng, autoflush=False, expire_on_commit=False
        )
        logger.info(f"store_connected: url={eng.url.render_as_string(hide_password=True)}")

    def session(self) -> Session:
        if self._sessionmaker is None:
            raise StoreNotConnected("Store is not connected; call connect() first")
        return self._sessionmaker()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar_one() == 1

    def reset(self) -> None:
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
