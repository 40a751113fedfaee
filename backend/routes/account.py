"""Account routes: profile, subscription, billing history, storage, support, plans."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from backend import config
from backend.auth import get_current_user, optional_user
from backend.database import get_db
from backend.models import (
    InvoiceOut,
    StorageUsageOut,
    SubscriptionOut,
    SupportTicketOut,
    SupportTicketRequest,
    UserOut,
)
from backend.models_db import SupportTicket, User
from backend.repositories import UserRepository
from backend.routes.common import get_services, to_http_exception
from backend.services.billing import BillingService
from backend.services.subscriptions import SubscriptionService
from engine.plans import PLANS, calculate_savings_percentage, remaining_credits

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/auth/me", response_model=UserOut)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current authenticated user."""
    return UserOut(
        id=current_user.id,
        email=current_user.email,
        full_name=current_user.full_name or "",
        is_admin=config.is_admin(current_user.id),
    )


@router.delete("/auth/delete-account")
async def delete_account(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete every trace of the user: Stripe subscription, stored files, rows."""
    user_id = current_user.id
    BillingService(db).cancel_stripe_subscription(user_id)

    try:
        removed = get_services(request).storage.delete_user_files(user_id)
        logger.info("Deleted %d stored files for %s", removed, user_id)
    except Exception as e:
        logger.warning("Failed to delete stored files for %s: %s", user_id, e)

    try:
        UserRepository(db).delete_all_data(user_id)
        db.commit()
    except Exception as e:
        db.rollback()
        raise to_http_exception(e)
    return {"success": True}


@router.get("/account/subscription", response_model=Optional[SubscriptionOut])
async def get_subscription(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    subscription = SubscriptionService(db).get_user_subscription(current_user.id)
    if subscription is None:
        return None
    return SubscriptionOut(
        plan_id=subscription.plan_id,
        status=subscription.status,
        billing_interval=subscription.billing_interval,
        amount=subscription.amount,
        currency=subscription.currency,
        generations_limit=subscription.generations_limit,
        generations_used=subscription.generations_used,
        remaining=remaining_credits(subscription.generations_used, subscription.generations_limit),
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        cancel_at=subscription.cancel_at,
        stripe_customer_id=subscription.stripe_customer_id,
    )


@router.get("/account/billing-history", response_model=list[InvoiceOut])
async def billing_history(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    invoices = SubscriptionService(db).get_billing_history(current_user.id)
    return [
        InvoiceOut(
            stripe_invoice_id=inv.stripe_invoice_id,
            amount=inv.amount,
            currency=inv.currency,
            status=inv.status,
            description=inv.description,
            invoice_pdf=inv.invoice_pdf,
            hosted_invoice_url=inv.hosted_invoice_url,
            period_start=inv.period_start,
            period_end=inv.period_end,
            created_at=inv.created_at,
        )
        for inv in invoices
    ]


@router.get("/account/storage-usage", response_model=StorageUsageOut)
async def storage_usage(request: Request, current_user: User = Depends(get_current_user)):
    try:
        usage = get_services(request).storage.get_user_storage_usage(current_user.id)
    except Exception as e:
        raise to_http_exception(e)
    return StorageUsageOut(
        total_bytes=usage.total_bytes,
        file_count=usage.file_count,
        total_mb=round(usage.total_bytes / (1024 * 1024), 2),
    )


@router.post("/support/tickets", response_model=SupportTicketOut)
async def create_ticket(
    body: SupportTicketRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ticket = SupportTicket(
        user_id=current_user.id,
        subject=body.subject,
        message=body.message,
        category=body.category,
        priority=body.priority,
    )
    db.add(ticket)
    db.commit()
    db.refresh(ticket)
    logger.info("Support ticket %s opened by %s", ticket.id, current_user.id)
    return _ticket_out(ticket)


@router.get("/support/tickets", response_model=list[SupportTicketOut])
async def list_tickets(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    tickets = (
        db.query(SupportTicket)
        .filter(SupportTicket.user_id == current_user.id)
        .order_by(SupportTicket.created_at.desc())
        .all()
    )
    return [_ticket_out(t) for t in tickets]


def _ticket_out(ticket: SupportTicket) -> SupportTicketOut:
    return SupportTicketOut(
        id=ticket.id,
        subject=ticket.subject,
        message=ticket.message,
        category=ticket.category,
        priority=ticket.priority,
        status=ticket.status,
        created_at=ticket.created_at,
    )


@router.get("/plans")
async def list_plans(
    current_user: Optional[User] = Depends(optional_user),
    db: Session = Depends(get_db),
):
    """Plan catalogue; marks the caller's current plan when authenticated."""
    current_plan = None
    if current_user is not None:
        subscription = SubscriptionService(db).get_user_subscription(current_user.id)
        current_plan = subscription.plan_id if subscription else None
    return {
        "plans": [
            {
                "id": plan.id,
                "name": plan.name,
                "monthlyPrice": plan.monthly_price,
                "yearlyPrice": plan.yearly_price,
                "yearlySavingsPercent": calculate_savings_percentage(plan.monthly_price, plan.yearly_price),
                "generationsLimit": plan.generations_limit,
                "features": list(plan.features),
                "popular": plan.popular,
            }
            for plan in PLANS.values()
        ],
        "currentPlanId": current_plan,
    }
