"""Stripe-facing endpoints: the webhook receiver and hosted checkout."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from repspheres import schemas
from repspheres.api import deps
from repspheres.api.context import ApiContext
from repspheres.api.deps import Inject
from repspheres.core.logging import logger
from repspheres.domains.billing.protocols import BillingServiceProtocol, BillingWebhookProtocol

router = APIRouter()


@router.post("/stripe-webhook", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(deps.get_db),
    webhook: BillingWebhookProtocol = Inject(BillingWebhookProtocol),
) -> Response:
    """Handle Stripe webhook events.

    The raw body is passed to the processor untouched; signature
    verification needs the exact bytes Stripe signed.

    Returns:
        200 ``{"received": true}`` on success, 400 with a text error when the
        signature or body is bad, 500 when applying the event failed.
    """
    if not stripe_signature:
        return PlainTextResponse("Webhook Error: missing stripe-signature header", 400)

    payload = await request.body()
    try:
        await webhook.process_webhook(db, payload, stripe_signature)
    except ValueError as e:
        logger.warning(f"Rejected webhook: {e}")
        return PlainTextResponse(f"Webhook Error: {e}", 400)
    except Exception:
        logger.error("Webhook processing failed", exc_info=True)
        return PlainTextResponse("Webhook processing failed", 500)
    return JSONResponse({"received": True})


@router.post("/create-checkout-session", response_model=schemas.CheckoutSessionResponse)
async def create_checkout_session(
    request: schemas.CheckoutSessionRequest,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    billing: BillingServiceProtocol = Inject(BillingServiceProtocol),
) -> schemas.CheckoutSessionResponse:
    """Start a hosted checkout for one of the catalog's prices.

    Unknown price ids are a 400; provider failures a 500 with a generic error.
    """
    url = await billing.start_checkout(
        db, user_id=ctx.user_id, email=ctx.user.email, price_id=request.price_id
    )
    return schemas.CheckoutSessionResponse(url=url)
