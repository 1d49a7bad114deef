"""
SQLAlchemy models for Bia Fridge

Tables:
- accounts: email/password credentials and verification state
- profiles: one per user identity, anchored to a personal fridge
- fridges / fridge_members: flat membership, no owner hierarchy
- invites: time-boxed fridge-share and account-creation invites
- fridge_items / categories: perishable inventory per fridge
- notifications: durable per-user notification feed

Identifiers are string UUIDs generated in Python so that rows are usable
immediately after insert on every backend (PostgreSQL and SQLite).
"""

import enum
from datetime import date, datetime
from typing import Optional, List
from uuid import uuid4

from sqlalchemy import (
    Boolean, Date, DateTime, Integer, String, Text, JSON,
    ForeignKey, UniqueConstraint, Index, Enum as SQLEnum,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates

from biafridge.shared.timeutils import utcnow


def new_id() -> str:
    return str(uuid4())


def _enum_column(enum_cls: type[enum.Enum]) -> SQLEnum:
    """Store enum values (not names) as portable VARCHARs."""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


# ============================================================================
# BASE & MIXINS
# ============================================================================

class Base(DeclarativeBase):
    """Base class for all models"""
    type_annotation_map = {
        dict: JSON,
    }


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


# ============================================================================
# ENUMS
# ============================================================================

class InviteType(str, enum.Enum):
    """What accepting the invite bootstraps"""
    FRIDGE = "fridge"
    ACCOUNT = "account"


class InviteStatus(str, enum.Enum):
    """Persisted invite status (see api.services.invite_state)"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class NotificationType(str, enum.Enum):
    """Notification categories"""
    ACCOUNT_CREATED = "account_created"
    FIRST_ITEM_ADDED = "first_item_added"
    ITEM_EXPIRING_TOMORROW = "item_expiring_tomorrow"
    FRIDGE_INVITE = "fridge_invite"
    FRIDGE_JOINED = "fridge_joined"


# ============================================================================
# IDENTITY
# ============================================================================

class Account(Base, TimestampMixin):
    """Email/password credential account"""
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)

    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_verification_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    email_verification_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    password_reset_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    password_reset_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @validates("email")
    def validate_email(self, key: str, value: str) -> str:
        """Ensure email is lowercase"""
        return value.strip().lower() if value else value

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, email={self.email})>"


class Profile(Base, TimestampMixin):
    """Per-identity profile; fridge_id is the personal anchor"""
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fridge_id: Mapped[str] = mapped_column(String(64), ForeignKey("fridges.id"), nullable=False, index=True)

    @validates("email")
    def validate_email(self, key: str, value: Optional[str]) -> Optional[str]:
        return value.strip().lower() if value else value

    def __repr__(self) -> str:
        return f"<Profile(user_id={self.user_id}, fridge_id={self.fridge_id})>"


# ============================================================================
# FRIDGES
# ============================================================================

class Fridge(Base, TimestampMixin):
    """A fridge and its flat member set"""
    __tablename__ = "fridges"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Set only on fridges created as somebody's personal fridge. Unique, so a
    # second concurrent creation for the same user fails instead of duplicating.
    personal_owner: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)

    memberships: Mapped[List["FridgeMember"]] = relationship(
        "FridgeMember",
        back_populates="fridge",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FridgeMember.id",
    )

    @property
    def members(self) -> list[str]:
        return [m.user_id for m in self.memberships]

    def __repr__(self) -> str:
        return f"<Fridge(id={self.id}, name={self.name}, members={self.members})>"


class FridgeMember(Base):
    """Membership row; insertion order is kept by the autoincrement id"""
    __tablename__ = "fridge_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fridge_id: Mapped[str] = mapped_column(String(64), ForeignKey("fridges.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    fridge: Mapped["Fridge"] = relationship("Fridge", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("fridge_id", "user_id", name="unique_fridge_member"),
        Index("idx_fridge_members_user", "user_id"),
    )


# ============================================================================
# INVITES
# ============================================================================

class Invite(Base, TimestampMixin):
    """Fridge-share or account-creation invite"""
    __tablename__ = "invites"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    inviter_id: Mapped[str] = mapped_column(String(255), nullable=False)
    invitee_email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    invite_type: Mapped[InviteType] = mapped_column(_enum_column(InviteType), default=InviteType.FRIDGE, nullable=False)

    # Desired shared-fridge name; the fridge itself is created on acceptance.
    fridge_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fridge_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    status: Mapped[InviteStatus] = mapped_column(_enum_column(InviteStatus), default=InviteStatus.PENDING, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    accepted_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @validates("invitee_email")
    def validate_invitee_email(self, key: str, value: str) -> str:
        return value.strip().lower() if value else value

    def __repr__(self) -> str:
        return f"<Invite(id={self.id}, type={self.invite_type}, status={self.status})>"


# ============================================================================
# INVENTORY
# ============================================================================

class Category(Base, TimestampMixin):
    """Item category, scoped to one fridge"""
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    fridge_id: Mapped[str] = mapped_column(String(64), ForeignKey("fridges.id", ondelete="CASCADE"), nullable=False, index=True)
    color: Mapped[str] = mapped_column(String(16), default="#6200ee", nullable=False)

    __table_args__ = (
        UniqueConstraint("fridge_id", "name", name="unique_category_per_fridge"),
    )


class FridgeItem(Base, TimestampMixin):
    """Perishable item stored in exactly one fridge"""
    __tablename__ = "fridge_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_opened: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    opened_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    fridge_id: Mapped[str] = mapped_column(String(64), ForeignKey("fridges.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        Index("idx_fridge_items_expiry", "expiry_date", "is_opened"),
    )

    def __repr__(self) -> str:
        return f"<FridgeItem(id={self.id}, name={self.name}, expiry={self.expiry_date})>"


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class Notification(Base):
    """Durable per-user notification"""
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[NotificationType] = mapped_column(_enum_column(NotificationType), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # fridge_id / item_id / invite_id / invite_token references
    meta: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "read", "created_at"),
        Index("idx_notifications_type", "type"),
    )
