"""One-shot usage reconciliation.

Re-reports usage events the inline path failed to deliver, then exits.
Meant for cron or a Kubernetes CronJob when the in-process loop is off
(``USAGE_RECONCILE_INTERVAL_SECONDS=0``)::

    python -m repspheres.jobs.reconcile_usage --passes 5
"""

import argparse
import asyncio
import sys

from repspheres.core.config import settings
from repspheres.core.container import create_container
from repspheres.core.logging import logger
from repspheres.domains.usage.types import ReconcileResult


async def run(passes: int) -> ReconcileResult:
    """Run up to ``passes`` reconciliation passes; a pass short of a full batch ends the run."""
    container = create_container(settings)
    total = ReconcileResult()
    for _ in range(passes):
        result = await container.usage_reconciler.reconcile_once()
        total.examined += result.examined
        total.reported += result.reported
        total.skipped += result.skipped
        total.failed += result.failed
        if result.examined < settings.USAGE_RECONCILE_BATCH_SIZE:
            break
    return total


def main(argv=None) -> int:
    """CLI entrypoint. Exits non-zero when any report failed."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--passes", type=int, default=1, help="maximum number of batches to process"
    )
    args = parser.parse_args(argv)

    if not settings.STRIPE_ENABLED:
        logger.info("Stripe disabled; nothing to reconcile")
        return 0

    total = asyncio.run(run(max(1, args.passes)))
    logger.info(
        f"Reconciliation finished: examined={total.examined} reported={total.reported} "
        f"skipped={total.skipped} failed={total.failed}"
    )
    return 1 if total.failed else 0


if __name__ == "__main__":
    sys.exit(main())
