from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    Integer,
    String,
    create_engine,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .config import get_settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class Contact(Base):
    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone: Mapped[str] = mapped_column(String, nullable=False)
    direction: Mapped[str] = mapped_column(String(3), nullable=False)  # "in" / "out"
    text: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


# --- Engine & Session factory ---

settings = get_settings()

engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db() -> None:
    """Create tables if they don't exist."""
    Base.metadata.create_all(bind=engine)


def resolve_name(db: Session, phone: str) -> str | None:
    """
    Look up the display name stored for a phone number.

    A failed lookup is logged and treated as "no name"; it must never hold up
    forwarding the message.
    """
    try:
        return db.scalar(select(Contact.name).where(Contact.phone == phone))
    except SQLAlchemyError as exc:
        logger.error("Error looking up contact %s: %s", phone, exc)
        return None


def upsert_contact(db: Session, phone: str, name: str) -> Contact:
    contact = db.scalar(select(Contact).where(Contact.phone == phone))
    if contact is None:
        contact = Contact(phone=phone, name=name)
        db.add(contact)
    else:
        contact.name = name
    db.commit()
    db.refresh(contact)
    return contact


def log_message(db: Session, phone: str, direction: str, text: str) -> Message:
    message = Message(phone=phone, direction=direction, text=text)
    db.add(message)
    db.commit()
    db.refresh(message)
    return message
