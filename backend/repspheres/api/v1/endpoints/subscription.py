"""Subscription endpoints: entitlement checks, usage tracking and plan management."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from repspheres import schemas
from repspheres.api import deps
from repspheres.api.context import ApiContext
from repspheres.api.deps import Inject
from repspheres.domains.billing.protocols import BillingServiceProtocol
from repspheres.domains.billing.types import PLANS, plan_response
from repspheres.domains.entitlements.protocols import EntitlementEvaluatorProtocol
from repspheres.domains.usage.protocols import UsageLedgerProtocol

router = APIRouter()


@router.get("/plans", response_model=List[schemas.PlanResponse])
async def list_plans() -> List[schemas.PlanResponse]:
    """The plan catalog, free tier included, for the pricing page."""
    return [plan_response(plan) for plan in PLANS.values()]


@router.get("/status", response_model=schemas.SubscriptionStatusResponse)
async def get_subscription_status(
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    evaluator: EntitlementEvaluatorProtocol = Inject(EntitlementEvaluatorProtocol),
) -> schemas.SubscriptionStatusResponse:
    """Plan, capabilities, limits and this month's usage of the current user."""
    return await evaluator.get_status(db, user_id=ctx.user_id)


@router.get(
    "/access/{feature}",
    response_model=schemas.AccessDecision,
    response_model_exclude_none=True,
)
async def check_access(
    feature: str,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    evaluator: EntitlementEvaluatorProtocol = Inject(EntitlementEvaluatorProtocol),
) -> schemas.AccessDecision:
    """Whether the current user may use ``feature`` right now.

    Always 200; denials carry a reason and the next step (upgrade or purchase).
    """
    decision = await evaluator.check_access(db, user_id=ctx.user_id, feature=feature)
    if not decision.has_access:
        ctx.logger.info(f"Access to '{feature}' denied: {decision.reason}")
    return decision


@router.post("/track-usage", response_model=schemas.UsageEvent)
async def track_usage(
    request: schemas.TrackUsageRequest,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    ledger: UsageLedgerProtocol = Inject(UsageLedgerProtocol),
) -> schemas.UsageEvent:
    """Record consumption of a metered feature.

    402 when the user has no active subscription. Each call counts once;
    retries are new usage.
    """
    event = await ledger.record_usage(
        db, user_id=ctx.user_id, feature_type=request.feature, quantity=request.quantity
    )
    return schemas.UsageEvent.model_validate(event)


@router.post("", response_model=schemas.UserSubscription)
async def create_subscription(
    request: schemas.CreateSubscriptionRequest,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    billing: BillingServiceProtocol = Inject(BillingServiceProtocol),
) -> schemas.UserSubscription:
    """Subscribe the current user to a plan with an already collected payment method."""
    record = await billing.create_subscription(
        db,
        user_id=ctx.user_id,
        email=ctx.user.email,
        plan_id=request.plan_id,
        payment_method_id=request.payment_method_id,
    )
    return schemas.UserSubscription.model_validate(record)


@router.post("/portal", response_model=schemas.PortalSessionResponse)
async def create_portal_session(
    request: schemas.PortalSessionRequest,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    billing: BillingServiceProtocol = Inject(BillingServiceProtocol),
) -> schemas.PortalSessionResponse:
    """Open Stripe's billing portal for the current user."""
    url = await billing.create_portal_session(
        db, user_id=ctx.user_id, return_url=request.return_url
    )
    return schemas.PortalSessionResponse(url=url)
