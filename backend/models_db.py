"""SQLAlchemy ORM models.

JSON columns are replaced wholesale on update; in-place mutation of the
loaded dict is not tracked.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import JSON, Boolean, Column, String, Integer, BigInteger, DateTime, Text, ForeignKey, Index
from backend.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    # Same id as the identity provider's subject claim
    id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    full_name = Column(String, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)


class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False, default="Untitled project")
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)


class Visual(Base):
    __tablename__ = "visuals"

    id = Column(String, primary_key=True, default=_uuid)
    visual_id = Column(String, unique=True, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    project_id = Column(String, ForeignKey("projects.id"), nullable=True)
    name = Column(String, nullable=False, default="")
    prompt = Column(Text, nullable=True)
    original_url = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    image_urls = Column(JSON, nullable=False, default=list)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    views = Column(Integer, nullable=False, default=0)
    downloads = Column(Integer, nullable=False, default=0)
    edit_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        Index("ix_visuals_user_id", "user_id"),
    )

    @property
    def status(self) -> str:
        return (self.meta or {}).get("status", "generating")


class ImageEdit(Base):
    __tablename__ = "image_edits"

    id = Column(String, primary_key=True, default=_uuid)
    edit_id = Column(String, unique=True, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    original_visual_id = Column(String, nullable=False)
    parent_edit_id = Column(String, nullable=True)
    edited_image_url = Column(String, nullable=False)
    thumbnail_url = Column(String, nullable=True)
    edit_params = Column(JSON, nullable=False, default=dict)
    prompt = Column(Text, nullable=False, default="")
    meta = Column("metadata", JSON, nullable=False, default=dict)
    version_number = Column(Integer, nullable=False, default=1)
    is_latest_version = Column(Boolean, nullable=False, default=True)
    views = Column(Integer, nullable=False, default=0)
    downloads = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        Index("ix_image_edits_visual_user", "original_visual_id", "user_id"),
    )


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True, unique=True)
    stripe_price_id = Column(String, nullable=True)
    plan_id = Column(String, nullable=False, default="free")
    status = Column(String, nullable=False, default="active")
    billing_interval = Column(String, nullable=False, default="monthly")
    amount = Column(Integer, nullable=False, default=0)  # cents
    currency = Column(String, nullable=False, default="eur")
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at = Column(DateTime, nullable=True)
    canceled_at = Column(DateTime, nullable=True)
    trial_start = Column(DateTime, nullable=True)
    trial_end = Column(DateTime, nullable=True)
    generations_limit = Column(Integer, nullable=False, default=5)
    generations_used = Column(Integer, nullable=False, default=0)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    subscription_id = Column(String, ForeignKey("subscriptions.id"), nullable=True)
    stripe_invoice_id = Column(String, unique=True, nullable=False)
    amount = Column(Integer, nullable=False, default=0)  # cents
    currency = Column(String, nullable=False, default="eur")
    status = Column(String, nullable=False, default="paid")
    description = Column(String, nullable=True)
    invoice_pdf = Column(String, nullable=True)
    hosted_invoice_url = Column(String, nullable=True)
    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_now)


class UsageRecord(Base):
    __tablename__ = "usage_records"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    subscription_id = Column(String, nullable=True)
    type = Column(String, nullable=False)  # "generation", "edit"
    visual_id = Column(String, nullable=True)
    credits_used = Column(Integer, nullable=False, default=1)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=_now)


class UserStats(Base):
    __tablename__ = "user_stats"

    user_id = Column(String, ForeignKey("users.id"), primary_key=True)
    total_generations = Column(Integer, nullable=False, default=0)
    total_edits = Column(Integer, nullable=False, default=0)
    storage_used_bytes = Column(BigInteger, nullable=False, default=0)
    last_generation_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)


class VisualFile(Base):
    __tablename__ = "visual_files"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    visual_id = Column(String, nullable=False, index=True)
    project_id = Column(String, nullable=True)
    file_path = Column(String, nullable=False, unique=True)
    file_type = Column(String, nullable=False, default="original")  # "original", "thumbnail"
    file_size = Column(BigInteger, nullable=False, default=0)
    content_type = Column(String, nullable=False, default="image/jpeg")
    created_at = Column(DateTime, nullable=False, default=_now)


class WizardSession(Base):
    __tablename__ = "wizard_sessions"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False, default="New product")
    flow = Column(String, nullable=False, default="unified")
    current_step = Column(String, nullable=False)
    state_json = Column(Text, nullable=False, default="{}")
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        Index("ix_wizard_sessions_user_id", "user_id"),
    )


class SupportTicket(Base):
    __tablename__ = "support_tickets"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    subject = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    category = Column(String, nullable=False, default="general")
    priority = Column(String, nullable=False, default="normal")
    status = Column(String, nullable=False, default="open")
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)
