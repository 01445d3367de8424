import logging
from datetime import datetime
from typing import ClassVar, List, Optional
from pathlib import Path
from uuid import uuid4
from pydantic import NaiveDatetime
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Field, Session, create_engine, select

from vaultaudit.config import settings
from vaultaudit.core.crypto import CryptoManager
from vaultaudit.core.models import PasswordInput, PasswordRecord

logger = logging.getLogger(__name__)


# --- Local data model ---

class StoredPassword(SQLModel, table=True):
    __tablename__: ClassVar[str] = "stored_passwords"
    __table_args__ = {"extend_existing": True}
    id: str = Field(primary_key=True)
    owner_id: str = Field(index=True)
    # Kept in clear for search and display
    service: str
    account: str
    secret: str
    notes: Optional[str] = None
    created_at: NaiveDatetime = Field(default_factory=datetime.now, index=True)
    updated_at: NaiveDatetime = Field(default_factory=datetime.now)
    expiry_date: Optional[NaiveDatetime] = None


class ClientConfig(SQLModel, table=True):
    __tablename__: ClassVar[str] = "client_config"
    __table_args__ = {"extend_existing": True}
    id: int = Field(default=1, primary_key=True)
    kdf_salt: Optional[str] = None


class RecordNotFoundError(LookupError):
    pass


def make_engine(db_url: str) -> Engine:
    connect_args = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    if db_url.startswith("sqlite:///"):
        Path(db_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(db_url, connect_args=connect_args)


# --- Store ---

class PasswordStore:
    """
    Owner-scoped CRUD over password records.
    Account, secret and notes are encrypted before they reach the database.
    """

    def __init__(self, crypto: CryptoManager, db_url: str | None = None, engine: Engine | None = None):
        self.crypto = crypto
        self.engine = engine or make_engine(db_url or settings.DATABASE_URL)
        SQLModel.metadata.create_all(self.engine)

    def create(self, owner_id: str, fields: PasswordInput, now: datetime | None = None) -> str:
        now = now or datetime.now()
        record = PasswordRecord(
            id=str(uuid4()),
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            **fields.model_dump(),
        )
        encrypted = self.crypto.encrypt_record(record)
        with Session(self.engine) as session:
            session.add(StoredPassword(**encrypted.model_dump()))
            session.commit()
        logger.info(f"Created password record {record.id} for owner {owner_id}")
        return record.id

    def get(self, record_id: str) -> PasswordRecord:
        with Session(self.engine) as session:
            row = session.get(StoredPassword, record_id)
            if row is None:
                raise RecordNotFoundError(record_id)
            return self._to_record(row)

    def list_by_owner(self, owner_id: str) -> List[PasswordRecord]:
        """Newest first."""
        with Session(self.engine) as session:
            statement = (
                select(StoredPassword)
                .where(StoredPassword.owner_id == owner_id)
                .order_by(StoredPassword.created_at.desc())
            )
            return [self._to_record(row) for row in session.exec(statement).all()]

    def update(self, record_id: str, fields: PasswordInput, now: datetime | None = None) -> PasswordRecord:
        with Session(self.engine) as session:
            row = session.get(StoredPassword, record_id)
            if row is None:
                raise RecordNotFoundError(record_id)

            current = self._to_record(row)
            updated = current.model_copy(update={**fields.model_dump(), "updated_at": now or datetime.now()})
            encrypted = self.crypto.encrypt_record(updated)
            for key in ("service", "account", "secret", "notes", "expiry_date", "updated_at"):
                setattr(row, key, getattr(encrypted, key))

            session.add(row)
            session.commit()
        logger.info(f"Updated password record {record_id}")
        return updated

    def delete(self, record_id: str):
        with Session(self.engine) as session:
            row = session.get(StoredPassword, record_id)
            if row is None:
                raise RecordNotFoundError(record_id)
            session.delete(row)
            session.commit()
        logger.info(f"Deleted password record {record_id}")

    def get_kdf_salt(self) -> str:
        """Salt for the master-password KDF, created on first use."""
        with Session(self.engine) as session:
            config = session.get(ClientConfig, 1)
            if config is None:
                config = ClientConfig(id=1)
            if not config.kdf_salt:
                config.kdf_salt = self.crypto.generate_salt()
                session.add(config)
                session.commit()
                session.refresh(config)
            return config.kdf_salt

    def _to_record(self, row: StoredPassword) -> PasswordRecord:
        return self.crypto.decrypt_record(PasswordRecord.model_validate(row))
