"""
Cron entry point for the time-driven passes.

Run once per scheduler tick (e.g. hourly):

    python -m cmms.jobs

Ticks must not overlap; two concurrent runs can fire the same schedule
twice.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Optional, Dict, Any

from cmms.services.contract_lifecycle import ContractLifecycleEvaluator, get_contract_evaluator
from cmms.services.pm_scheduler import PMScheduler, get_pm_scheduler
from cmms.utils.clock import as_utc, get_clock
from cmms.utils.config import settings

logger = logging.getLogger(__name__)


def run_maintenance_cycle(
    now: Optional[datetime] = None,
    scheduler: Optional[PMScheduler] = None,
    evaluator: Optional[ContractLifecycleEvaluator] = None,
) -> Dict[str, Any]:
    """
    Generate due PM work orders, then re-evaluate contract statuses.

    A failure of one pass is recorded and does not stop the other.
    """
    now = as_utc(now or get_clock().now())
    scheduler = scheduler or get_pm_scheduler()
    evaluator = evaluator or get_contract_evaluator()
    logger.info(f"Starting maintenance cycle at {now.isoformat()}")
    results: Dict[str, Any] = {"ran_at": now.isoformat()}

    try:
        results["pm_generation"] = scheduler.generate_due_work_orders(now).model_dump()
    except Exception as e:
        results["pm_generation"] = {"error": str(e)}
        logger.exception(f"PM work order generation failed: {e}")

    try:
        results["contracts"] = evaluator.evaluate(now).model_dump()
    except Exception as e:
        results["contracts"] = {"error": str(e)}
        logger.exception(f"Contract evaluation failed: {e}")

    logger.info("Maintenance cycle complete")
    return results


def main() -> int:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    results = run_maintenance_cycle()
    print(json.dumps(results, indent=2, default=str))
    failed = any("error" in results[key] for key in ("pm_generation", "contracts"))
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
