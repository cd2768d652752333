"""Connection and session management for per-collection state databases."""

import re
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, List, Union

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, STATE_SCHEMA_VERSION, SyncMetaModel
from ..utils.logging import get_logger


logger = get_logger("state.database")

_UNSAFE_FILE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.close()


def state_file_name(collection_id: str) -> str:
    """File name of the state database for a collection."""
    safe = _UNSAFE_FILE_CHARS.sub("_", collection_id).strip(".") or "collection"
    return f"{safe}.sqlite3"


class StateDatabaseManager:
    """Opens one SQLite database per collection inside a state directory."""

    def __init__(self, state_directory: Union[str, Path]):
        """Initialize the state database manager.

        Args:
            state_directory: Directory holding the per-collection databases
        """
        self.state_directory = Path(state_directory).expanduser()
        self._engines: Dict[str, Engine] = {}
        self._sessions: Dict[str, sessionmaker] = {}
        self._lock = threading.Lock()

        logger.info("State database manager initialized", state_directory=str(self.state_directory))

    def database_path(self, collection_id: str) -> Path:
        """Path of a collection's state database."""
        return self.state_directory / state_file_name(collection_id)

    def engine_for(self, collection_id: str) -> Engine:
        """Get (opening and migrating on first use) the engine for a collection."""
        with self._lock:
            engine = self._engines.get(collection_id)
            if engine is not None:
                return engine

            self.state_directory.mkdir(parents=True, exist_ok=True)
            engine = create_engine(
                f"sqlite:///{self.database_path(collection_id)}",
                poolclass=StaticPool,
                connect_args={
                    "check_same_thread": False,
                    "timeout": 20
                },
                echo=False
            )
            event.listen(engine, "connect", _set_sqlite_pragmas)

            try:
                Base.metadata.create_all(bind=engine)
            except Exception as e:
                logger.error("Failed to create state tables", collection_id=collection_id, error=str(e))
                engine.dispose()
                raise

            self._engines[collection_id] = engine
            self._sessions[collection_id] = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=engine
            )
            self._stamp_version(collection_id)

            logger.debug(
                "State database opened",
                collection_id=collection_id,
                path=str(self.database_path(collection_id))
            )
            return engine

    @contextmanager
    def session_scope(self, collection_id: str) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        self.engine_for(collection_id)
        session = self._sessions[collection_id]()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("State transaction rolled back", collection_id=collection_id, error=str(e))
            raise
        finally:
            session.close()

    def test_connection(self, collection_id: str) -> bool:
        """Test a collection's state database."""
        try:
            with self.session_scope(collection_id) as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("State database connection test failed", collection_id=collection_id, error=str(e))
            return False

    def open_collections(self) -> List[str]:
        """Collections whose databases are currently open."""
        with self._lock:
            return list(self._engines.keys())

    def close(self) -> None:
        """Close all open state databases."""
        with self._lock:
            for engine in self._engines.values():
                engine.dispose()
            self._engines.clear()
            self._sessions.clear()
        logger.debug("State databases closed", state_directory=str(self.state_directory))

    def _stamp_version(self, collection_id: str) -> None:
        session = self._sessions[collection_id]()
        try:
            if session.get(SyncMetaModel, "version") is None:
                session.add(SyncMetaModel(key="version", value=str(STATE_SCHEMA_VERSION)))
                session.commit()
        finally:
            session.close()
