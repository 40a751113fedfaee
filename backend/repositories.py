"""Typed data-access layer.

One small repository per table. Counter increments and aggregate queries
that used to be database RPCs (increment_visual_views, get_user_dashboard_stats,
update_user_usage, create_visual_file, ...) are methods here with explicit
parameter and return types. Repositories never commit; the caller owns the
transaction.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from backend.models_db import (
    ImageEdit,
    Invoice,
    Project,
    Subscription,
    SupportTicket,
    UsageRecord,
    User,
    UserStats,
    Visual,
    VisualFile,
    WizardSession,
)

ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing", "past_due")


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DashboardStats:
    total_visuals: int = 0
    total_views: int = 0
    total_downloads: int = 0
    total_edits: int = 0
    visuals_this_month: int = 0


@dataclass
class StorageUsage:
    total_bytes: int = 0
    file_count: int = 0


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def upsert(self, user_id: str, email: Optional[str]) -> User:
        user = self.get(user_id)
        if user is None:
            user = User(id=user_id, email=email)
            self.db.add(user)
        elif email and user.email != email:
            user.email = email
        return user

    def delete_all_data(self, user_id: str) -> None:
        """Remove every row owned by the user, then the user itself."""
        for model in (ImageEdit, Visual, UsageRecord, Invoice, Subscription, VisualFile, SupportTicket):
            self.db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)
        self.db.query(UserStats).filter(UserStats.user_id == user_id).delete(synchronize_session=False)
        self.db.query(WizardSession).filter(WizardSession.user_id == user_id).delete(synchronize_session=False)
        self.db.query(Project).filter(Project.user_id == user_id).delete(synchronize_session=False)
        self.db.query(User).filter(User.id == user_id).delete(synchronize_session=False)


class VisualRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> Visual:
        visual = Visual(**fields)
        self.db.add(visual)
        self.db.flush()
        return visual

    def get_by_visual_id(self, visual_id: str) -> Optional[Visual]:
        return self.db.query(Visual).filter(Visual.visual_id == visual_id).first()

    def get_owned(self, visual_id: str, user_id: str) -> Optional[Visual]:
        return (
            self.db.query(Visual)
            .filter(Visual.visual_id == visual_id, Visual.user_id == user_id)
            .first()
        )

    def list_for_user(self, user_id: str, limit: int = 50, offset: int = 0, project_id: Optional[str] = None) -> list[Visual]:
        query = self.db.query(Visual).filter(Visual.user_id == user_id)
        if project_id:
            query = query.filter(Visual.project_id == project_id)
        return query.order_by(Visual.created_at.desc()).offset(offset).limit(limit).all()

    def count_for_user(self, user_id: str) -> int:
        return self.db.query(func.count(Visual.id)).filter(Visual.user_id == user_id).scalar() or 0

    def update_metadata(self, visual: Visual, **changes) -> Visual:
        visual.meta = {**(visual.meta or {}), **changes}
        visual.updated_at = _now()
        return visual

    def delete(self, visual: Visual) -> None:
        self.db.delete(visual)

    def increment_views(self, visual_id: str) -> int:
        """Atomic ``views + 1``; returns the number of rows touched."""
        result = self.db.execute(
            update(Visual).where(Visual.visual_id == visual_id).values(views=Visual.views + 1)
        )
        return result.rowcount or 0

    def increment_downloads(self, visual_id: str) -> int:
        result = self.db.execute(
            update(Visual).where(Visual.visual_id == visual_id).values(downloads=Visual.downloads + 1)
        )
        return result.rowcount or 0

    def adjust_edit_count(self, visual_id: str, delta: int) -> None:
        self.db.execute(
            update(Visual).where(Visual.visual_id == visual_id).values(edit_count=Visual.edit_count + delta)
        )

    def dashboard_stats(self, user_id: str) -> DashboardStats:
        row = (
            self.db.query(
                func.count(Visual.id),
                func.coalesce(func.sum(Visual.views), 0),
                func.coalesce(func.sum(Visual.downloads), 0),
                func.coalesce(func.sum(Visual.edit_count), 0),
            )
            .filter(Visual.user_id == user_id)
            .one()
        )
        month_start = _now().replace(day=1, hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
        this_month = (
            self.db.query(func.count(Visual.id))
            .filter(Visual.user_id == user_id, Visual.created_at >= month_start)
            .scalar()
        )
        return DashboardStats(
            total_visuals=int(row[0] or 0),
            total_views=int(row[1] or 0),
            total_downloads=int(row[2] or 0),
            total_edits=int(row[3] or 0),
            visuals_this_month=int(this_month or 0),
        )


class ImageEditRepository:
    def __init__(self, db: Session):
        self.db = db

    def insert(self, **fields) -> ImageEdit:
        edit = ImageEdit(**fields)
        self.db.add(edit)
        self.db.flush()
        return edit

    def get_version_number(self, edit_ref: str) -> Optional[int]:
        """Version of the edit whose row id or public edit id is ``edit_ref``."""
        row = (
            self.db.query(ImageEdit.version_number)
            .filter(or_(ImageEdit.id == edit_ref, ImageEdit.edit_id == edit_ref))
            .first()
        )
        return row[0] if row else None

    def retire_version(self, edit_ref: str, user_id: str) -> int:
        """Clear ``is_latest_version`` on one edit (row id or public edit id)."""
        result = self.db.execute(
            update(ImageEdit)
            .where(
                or_(ImageEdit.id == edit_ref, ImageEdit.edit_id == edit_ref),
                ImageEdit.user_id == user_id,
                ImageEdit.is_latest_version.is_(True),
            )
            .values(is_latest_version=False)
        )
        return result.rowcount or 0

    def history(self, visual_id: str, user_id: str) -> list[ImageEdit]:
        return (
            self.db.query(ImageEdit)
            .filter(ImageEdit.original_visual_id == visual_id, ImageEdit.user_id == user_id)
            .order_by(ImageEdit.created_at.desc())
            .all()
        )

    def get_owned(self, edit_id: str, user_id: str) -> Optional[ImageEdit]:
        return (
            self.db.query(ImageEdit)
            .filter(ImageEdit.edit_id == edit_id, ImageEdit.user_id == user_id)
            .first()
        )

    def delete(self, edit: ImageEdit) -> None:
        self.db.delete(edit)

    def increment(self, edit_id: str, column: str) -> None:
        col = {"views": ImageEdit.views, "downloads": ImageEdit.downloads}[column]
        self.db.execute(update(ImageEdit).where(ImageEdit.edit_id == edit_id).values({column: col + 1}))


class SubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def current_for_user(self, user_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
            )
            .order_by(Subscription.created_at.desc())
            .first()
        )

    def latest_for_user(self, user_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc())
            .first()
        )

    def by_stripe_subscription_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.stripe_subscription_id == stripe_subscription_id)
            .first()
        )

    def by_stripe_customer_id(self, stripe_customer_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.stripe_customer_id == stripe_customer_id)
            .order_by(Subscription.created_at.desc())
            .first()
        )

    def cancel_active(self, user_id: str) -> int:
        result = self.db.execute(
            update(Subscription)
            .where(Subscription.user_id == user_id, Subscription.status == "active")
            .values(status="canceled", canceled_at=_now(), updated_at=_now())
        )
        return result.rowcount or 0

    def add(self, subscription: Subscription) -> Subscription:
        self.db.add(subscription)
        self.db.flush()
        return subscription

    def add_invoice(self, invoice: Invoice) -> Invoice:
        existing = (
            self.db.query(Invoice).filter(Invoice.stripe_invoice_id == invoice.stripe_invoice_id).first()
        )
        if existing:
            return existing
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def invoices_for_user(self, user_id: str, limit: int = 24) -> list[Invoice]:
        return (
            self.db.query(Invoice)
            .filter(Invoice.user_id == user_id)
            .order_by(Invoice.created_at.desc())
            .limit(limit)
            .all()
        )


class UsageRepository:
    def __init__(self, db: Session):
        self.db = db

    def record(self, user_id: str, usage_type: str, credits_used: int,
               visual_id: Optional[str] = None, subscription_id: Optional[str] = None,
               metadata: Optional[dict] = None) -> UsageRecord:
        record = UsageRecord(
            user_id=user_id,
            type=usage_type,
            credits_used=credits_used,
            visual_id=visual_id,
            subscription_id=subscription_id,
            meta=metadata or {},
        )
        self.db.add(record)
        return record

    def update_user_usage(self, user_id: str, generations: int = 0, edits: int = 0) -> UserStats:
        stats = self.db.get(UserStats, user_id)
        if stats is None:
            stats = UserStats(user_id=user_id, total_generations=0, total_edits=0, storage_used_bytes=0)
            self.db.add(stats)
            self.db.flush()
        stats.total_generations = (stats.total_generations or 0) + generations
        stats.total_edits = (stats.total_edits or 0) + edits
        if generations:
            stats.last_generation_at = _now()
        return stats


class VisualFileRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, visual_id: str, file_path: str, file_size: int,
               content_type: str, file_type: str = "original", project_id: Optional[str] = None) -> VisualFile:
        existing = self.db.query(VisualFile).filter(VisualFile.file_path == file_path).first()
        if existing:
            existing.file_size = file_size
            existing.content_type = content_type
            return existing
        record = VisualFile(
            user_id=user_id,
            visual_id=visual_id,
            project_id=project_id,
            file_path=file_path,
            file_type=file_type,
            file_size=file_size,
            content_type=content_type,
        )
        self.db.add(record)
        return record

    def delete_for_visual(self, user_id: str, visual_id: str) -> int:
        return (
            self.db.query(VisualFile)
            .filter(
                VisualFile.user_id == user_id,
                or_(VisualFile.visual_id == visual_id, VisualFile.visual_id.like(f"{visual_id}\\_%", escape="\\")),
            )
            .delete(synchronize_session=False)
        )

    def storage_usage(self, user_id: str) -> StorageUsage:
        total, count = (
            self.db.query(func.coalesce(func.sum(VisualFile.file_size), 0), func.count(VisualFile.id))
            .filter(VisualFile.user_id == user_id)
            .one()
        )
        return StorageUsage(total_bytes=int(total or 0), file_count=int(count or 0))
