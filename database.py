# database.py
import logging
import sqlite3
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (create_engine, event, CheckConstraint, Column, String,
                        Float, Boolean, ForeignKey, Date, DateTime, Text)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, relationship

import config
from errors import RetrievalError, MutationError

logger = logging.getLogger(__name__)

ROLES = ["admin", "manager", "operator"]
HECTARE_STATUSES = ["active", "inactive", "harvested"]
EMISSION_TYPES = ["cultivation", "harvest", "transport", "processing"]
TOKEN_TYPES = ["earned", "purchased", "retired"]

engine = None
Session = sessionmaker(expire_on_commit=False)
Base = declarative_base()


def _new_id():
    return str(uuid.uuid4())


def _now():
    return datetime.now(timezone.utc)


def _in(column, values):
    return "{} IN ({})".format(column, ", ".join(f"'{v}'" for v in values))


class Identity(Base):
    __tablename__ = "identities"
    id            = Column(String(36), primary_key=True, default=_new_id)
    email         = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at    = Column(DateTime, nullable=False, default=_now)


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (CheckConstraint(_in("role", ROLES), name="ck_profiles_role"),)
    id         = Column(String(36), ForeignKey("identities.id"), primary_key=True)
    email      = Column(String, unique=True, nullable=False)
    full_name  = Column(String)
    role       = Column(String, nullable=False, default="operator")
    is_active  = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(36))
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    hectares  = relationship("Hectare", back_populates="owner", cascade="all, delete-orphan")
    emissions = relationship("Emission", back_populates="owner", cascade="all, delete-orphan")
    tokens    = relationship("Token", back_populates="owner", cascade="all, delete-orphan")


class Hectare(Base):
    __tablename__ = "hectares"
    __table_args__ = (
        CheckConstraint("size > 0", name="ck_hectares_size"),
        CheckConstraint(_in("status", HECTARE_STATUSES), name="ck_hectares_status"),
    )
    id         = Column(String(36), primary_key=True, default=_new_id)
    owner_id   = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    name       = Column(String, nullable=False)
    size       = Column(Float, nullable=False)
    location   = Column(String)
    status     = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, nullable=False, default=_now)

    owner     = relationship("Profile", back_populates="hectares")
    emissions = relationship("Emission", back_populates="hectare")


class Emission(Base):
    __tablename__ = "emissions"
    __table_args__ = (
        CheckConstraint("emission_amount >= 0", name="ck_emissions_amount"),
        CheckConstraint(_in("emission_type", EMISSION_TYPES), name="ck_emissions_type"),
    )
    id              = Column(String(36), primary_key=True, default=_new_id)
    owner_id        = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    hectare_id      = Column(String(36), ForeignKey("hectares.id", ondelete="SET NULL"))
    emission_amount = Column(Float, nullable=False)  # kg CO2
    emission_date   = Column(Date, nullable=False, default=date.today)
    emission_type   = Column(String, nullable=False)
    notes           = Column(Text)
    created_at      = Column(DateTime, nullable=False, default=_now)

    owner   = relationship("Profile", back_populates="emissions")
    hectare = relationship("Hectare", back_populates="emissions")


class Token(Base):
    __tablename__ = "tokens"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_tokens_amount"),
        CheckConstraint("value >= 0", name="ck_tokens_value"),
        CheckConstraint(_in("token_type", TOKEN_TYPES), name="ck_tokens_type"),
    )
    id               = Column(String(36), primary_key=True, default=_new_id)
    owner_id         = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    amount           = Column(Float, nullable=False)  # credit units
    token_type       = Column(String, nullable=False)
    value            = Column(Float, nullable=False)  # currency units
    transaction_date = Column(DateTime, nullable=False, default=_now)
    blockchain_tx    = Column(String)  # free text, never verified
    created_at       = Column(DateTime, nullable=False, default=_now)

    owner = relationship("Profile", back_populates="tokens")


TABLES = {
    "identities": Identity,
    "profiles": Profile,
    "hectares": Hectare,
    "emissions": Emission,
    "tokens": Token,
}


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def configure(url=None):
    """Bind the session factory to a (new) engine and return it."""
    global engine
    url = url or config.DATABASE_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    if engine is not None:
        engine.dispose()
    engine = create_engine(url, echo=False, connect_args=connect_args)
    Session.configure(bind=engine)
    logger.info("Record store bound to %s", engine.url.render_as_string(hide_password=True))
    return engine


def init_db():
    if engine is None:
        configure()
    Base.metadata.create_all(engine)


class RecordStore:
    """
    Thin accessor over the relational backend.

    Filters are equality on columns, combined with AND. Every call opens its
    own session, so a store can be shared by concurrent fetches.
    """

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or Session

    def _model(self, table):
        try:
            return TABLES[table]
        except KeyError:
            raise ValueError(f"unknown table {table!r}") from None

    def select(self, table, order_by=None, descending=True, **filters):
        model = self._model(table)
        try:
            with self._session_factory() as db:
                query = db.query(model).filter_by(**filters)
                if order_by:
                    column = getattr(model, order_by)
                    if descending:
                        query = query.order_by(column.desc(), model.id.desc())
                    else:
                        query = query.order_by(column.asc(), model.id.asc())
                return query.all()
        except SQLAlchemyError as exc:
            logger.error("Select on %s failed: %s", table, exc)
            raise RetrievalError(f"Could not load {table}", table=table) from exc

    def get(self, table, record_id):
        model = self._model(table)
        try:
            with self._session_factory() as db:
                return db.get(model, record_id)
        except SQLAlchemyError as exc:
            logger.error("Lookup of %s/%s failed: %s", table, record_id, exc)
            raise RetrievalError(f"Could not load {table}", table=table) from exc

    def insert(self, table, **fields):
        model = self._model(table)
        record = model(**fields)
        try:
            with self._session_factory() as db:
                db.add(record)
                db.commit()
                db.refresh(record)
                return record
        except SQLAlchemyError as exc:
            logger.error("Insert into %s failed: %s", table, exc)
            raise MutationError(f"Could not save to {table}", table=table) from exc

    def update(self, table, record_id, **fields):
        model = self._model(table)
        try:
            with self._session_factory() as db:
                record = db.get(model, record_id)
                if record is None:
                    raise MutationError(f"No {table} record {record_id}", table=table)
                for name, value in fields.items():
                    setattr(record, name, value)
                db.commit()
                db.refresh(record)
                return record
        except SQLAlchemyError as exc:
            logger.error("Update of %s/%s failed: %s", table, record_id, exc)
            raise MutationError(f"Could not update {table}", table=table) from exc

    def delete(self, table, record_id):
        model = self._model(table)
        try:
            with self._session_factory() as db:
                record = db.get(model, record_id)
                if record is None:
                    raise MutationError(f"No {table} record {record_id}", table=table)
                db.delete(record)
                db.commit()
        except SQLAlchemyError as exc:
            logger.error("Delete of %s/%s failed: %s", table, record_id, exc)
            raise MutationError(f"Could not delete from {table}", table=table) from exc
