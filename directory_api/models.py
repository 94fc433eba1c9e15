"""SQLAlchemy ORM models for database tables."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import deferred
from sqlalchemy.sql import func

from .config import settings
from .db import Base


class Company(Base):
    """Organization an account may belong to, mapped to 'companies' table."""

    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Account(Base):
    """Registered user mapped to 'users' table.

    The password hash is deferred with raiseload: default queries never load it,
    and touching it without an explicit ``undefer`` raises instead of issuing SQL.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firstname = Column(String(settings.NAME_MAX_LENGTH), nullable=False)
    lastname = Column(String(settings.NAME_MAX_LENGTH), nullable=False)
    email = Column(String(settings.EMAIL_MAX_LENGTH), nullable=False, unique=True, index=True)
    password_hash = deferred(Column(String(255), nullable=True), raiseload=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class VerificationToken(Base):
    """One-time email verification token mapped to 'token_verifications' table."""

    __tablename__ = "token_verifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
