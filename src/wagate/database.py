"""
Audit log storage.

Every message send attempt is appended to the ``message_logs`` table and
never modified afterwards. Ids are assigned by SQLite in insertion order,
so "most recent" always means "highest id".
"""

import asyncio
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import Column, DateTime, func
from sqlmodel import Field, Session, SQLModel, create_engine, select

from wagate.logger import get_logger
from wagate.models import MessageLogEntry, MessageOutcome

logger = get_logger(__name__)


class MessageLogModel(SQLModel, table=True):
    __tablename__ = "message_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    recipient: str = Field(index=True)
    body: str
    outcome: str
    failure_reason: Optional[str] = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class AuditLogDatabase:
    """Append-only store of send attempts."""

    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            from wagate.config import CONFIG

            db_path = str(CONFIG.database_path)

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self.engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False},
        )
        SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self.engine) as session:
            yield session

    def insert_message_log(
        self,
        recipient: str,
        body: str,
        outcome: MessageOutcome,
        failure_reason: Optional[str] = None,
    ) -> MessageLogEntry:
        """Append one attempt and return it with its assigned id."""
        row = MessageLogModel(
            recipient=recipient,
            body=body,
            outcome=MessageOutcome(outcome).value,
            failure_reason=failure_reason,
        )
        with self._session() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return MessageLogEntry.model_validate(row)

    def list_recent_message_logs(self, limit: int = 50) -> list[MessageLogEntry]:
        """Return up to ``limit`` entries, most recent first."""
        with self._session() as session:
            stmt = (
                select(MessageLogModel)
                .order_by(MessageLogModel.id.desc())
                .limit(limit)
            )
            return [MessageLogEntry.model_validate(row) for row in session.exec(stmt)]

    def count_message_logs(self) -> int:
        with self._session() as session:
            return session.exec(select(func.count()).select_from(MessageLogModel)).one()

    async def ainsert_message_log(
        self,
        recipient: str,
        body: str,
        outcome: MessageOutcome,
        failure_reason: Optional[str] = None,
    ) -> MessageLogEntry:
        return await asyncio.to_thread(
            self.insert_message_log, recipient, body, outcome, failure_reason
        )

    async def alist_recent_message_logs(self, limit: int = 50) -> list[MessageLogEntry]:
        return await asyncio.to_thread(self.list_recent_message_logs, limit)


_database: Optional[AuditLogDatabase] = None


def get_database() -> AuditLogDatabase:
    """Return the process-wide database, creating it on first use."""
    global _database
    if _database is None:
        _database = AuditLogDatabase()
        logger.info(f"Audit log database at {_database.db_path}")
    return _database
