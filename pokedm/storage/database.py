"""
Relational storage via SQLAlchemy.

Each save is a single transaction: the row is locked (where the backend
supports ``SELECT ... FOR UPDATE``), its revision compared, then updated or
inserted. SQLite serializes writers on its own.
"""

import os
from typing import List, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm import sessionmaker

from pokedm.config import settings
from pokedm.errors import StaleWriteError
from pokedm.storage.base import Document, RawDocument, StorageAdapter, register_adapter
from pokedm.storage.models import Base, SessionRecord
from pokedm.utils.clock import Clock
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)


class DatabaseStorageAdapter(StorageAdapter):
    """
    Stores session documents in the ``pokedm_sessions`` table.

    Attributes:
        database_url: SQLAlchemy URL, e.g. ``sqlite:///data/pokedm.db``
        engine: SQLAlchemy engine
        SessionLocal: Factory for database sessions
    """

    name = "database"

    def __init__(self, database_url: Optional[str] = None, clock: Optional[Clock] = None):
        super().__init__(clock=clock)
        self.database_url = database_url or settings.database_url
        url = make_url(self.database_url)

        connect_args = {}
        if url.get_backend_name() == "sqlite":
            # The adapter runs blocking calls on worker threads
            connect_args["check_same_thread"] = False
            if url.database and url.database != ":memory:":
                directory = os.path.dirname(url.database)
                if directory:
                    os.makedirs(directory, exist_ok=True)

        self.engine = create_engine(self.database_url, echo=False, connect_args=connect_args)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info(f"Database storage initialized at {url.render_as_string(hide_password=True)}")

    def _read_raw(self, session_id: str) -> Optional[RawDocument]:
        db: DBSession = self.SessionLocal()
        try:
            record = db.get(SessionRecord, session_id)
            if record is None:
                return None
            return record.document, str(record.revision)
        finally:
            db.close()

    def _write_raw(
        self, session_id: str, document: Document, expected_revision: Optional[str]
    ) -> str:
        db: DBSession = self.SessionLocal()
        try:
            record = db.execute(
                select(SessionRecord)
                .where(SessionRecord.session_id == session_id)
                .with_for_update()
            ).scalar_one_or_none()

            actual = str(record.revision) if record is not None else None
            if expected_revision is not None and actual != expected_revision:
                raise StaleWriteError(session_id, expected_revision, actual)

            campaign_id = document["session"]["campaign_id"]
            if record is None:
                record = SessionRecord(
                    session_id=session_id,
                    campaign_id=campaign_id,
                    document=document,
                    revision=1,
                )
                db.add(record)
            else:
                record.document = document
                record.campaign_id = campaign_id
                record.revision = record.revision + 1

            db.commit()
            return str(record.revision)
        except StaleWriteError:
            db.rollback()
            raise
        except IntegrityError as e:
            # Another writer inserted the same session first
            db.rollback()
            raise StaleWriteError(session_id, expected_revision, None) from e
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to save session {session_id}: {e}")
            raise
        finally:
            db.close()

    def _list_raw(self, campaign_id: Optional[str]) -> List[str]:
        db: DBSession = self.SessionLocal()
        try:
            query = select(SessionRecord.session_id).order_by(SessionRecord.session_id)
            if campaign_id is not None:
                query = query.where(SessionRecord.campaign_id == campaign_id)
            return list(db.execute(query).scalars())
        finally:
            db.close()

    def _delete_raw(self, session_id: str) -> bool:
        db: DBSession = self.SessionLocal()
        try:
            record = db.get(SessionRecord, session_id)
            if record is None:
                return False
            db.delete(record)
            db.commit()
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to delete session {session_id}: {e}")
            raise
        finally:
            db.close()


register_adapter("database", DatabaseStorageAdapter)
