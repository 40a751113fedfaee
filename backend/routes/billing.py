"""Stripe routes: checkout, customer portal and webhooks."""

import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from backend.auth import get_current_user
from backend.database import get_db
from backend.models import CheckoutRequest, CheckoutResponse, PortalResponse
from backend.models_db import User
from backend.routes.common import to_http_exception
from backend.services.billing import BillingService, construct_event

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a Stripe checkout session for a paid plan."""
    try:
        session = BillingService(db).create_checkout_session(current_user, body.plan_id, body.billing_interval)
    except stripe.StripeError as e:
        logger.error("Stripe checkout failed for %s: %s", current_user.id, e)
        raise HTTPException(status_code=500, detail="Stripe error")
    except Exception as e:
        raise to_http_exception(e)
    return CheckoutResponse(session_id=session["session_id"], url=session["url"])


@router.post("/stripe/create-portal-session", response_model=PortalResponse)
async def create_portal_session(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        url = BillingService(db).create_portal_session(current_user)
    except stripe.StripeError as e:
        logger.error("Stripe portal failed for %s: %s", current_user.id, e)
        raise HTTPException(status_code=500, detail="Stripe error")
    except Exception as e:
        raise to_http_exception(e)
    return PortalResponse(url=url)


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """Handle Stripe webhook events."""
    payload = await request.body()
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing Stripe signature")

    try:
        event = construct_event(payload, stripe_signature)
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=str(e))

    try:
        handled = BillingService(db).handle_event(event)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to process Stripe event %s", event["type"])
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    return {"received": True, "handled": handled}
