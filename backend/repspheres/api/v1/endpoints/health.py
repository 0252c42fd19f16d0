"""Health check endpoint."""

from fastapi import APIRouter

router = APIRouter()


@router.get("")
async def health_check() -> dict[str, str]:
    """Check if the API is up. Does not touch the database or Stripe."""
    return {"status": "ok"}
