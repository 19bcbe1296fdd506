"""
Automated hold of long-overdue schedules

Organizations opt in through ``organization_policies.auto_hold_overdue_days``.
Active schedules whose due date is older than that many days are paused so
they stop cluttering the overdue list.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import AUTO_HOLD_BATCH_SIZE
from ...events import InvalidationBus
from ...events import bus as default_bus
from ...shared.calendar_math import DateLike, to_date, utc_today
from .repository import ScheduleRepository

logger = logging.getLogger(__name__)


def auto_hold_overdue_schedules(
    db: Session,
    today: Optional[DateLike] = None,
    batch_size: int = AUTO_HOLD_BATCH_SIZE,
    bus: Optional[InvalidationBus] = None,
) -> dict:
    """
    Pause overdue schedules for every organization with an auto-hold policy
    Should be run as a scheduled job (daily cron)

    Returns:
        dict: Summary of schedules paused
    """
    bus = bus or default_bus
    current = to_date(today) if today is not None else utc_today()
    repo = ScheduleRepository()

    summary = {"organizations_checked": 0, "organizations_updated": 0, "schedules_paused": 0, "errors": 0}

    for policy in repo.get_auto_hold_policies(db):
        summary["organizations_checked"] += 1
        cutoff = current - timedelta(days=policy.auto_hold_overdue_days)
        paused_for_org = 0

        try:
            while True:
                ids = repo.get_overdue_schedule_ids(db, policy.organization_id, cutoff, batch_size)
                if not ids:
                    break
                paused_for_org += repo.pause_schedules(db, ids, current)
                if len(ids) < batch_size:
                    break
        except Exception as e:
            db.rollback()
            summary["errors"] += 1
            logger.error(f"❌ Auto-hold failed for organization {policy.organization_id}: {str(e)}")
            continue

        if paused_for_org:
            summary["organizations_updated"] += 1
            summary["schedules_paused"] += paused_for_org
            logger.info(
                f"⏸️ Auto-held {paused_for_org} schedule(s) for organization {policy.organization_id} "
                f"(overdue before {cutoff})"
            )
            bus.invalidate(policy.organization_id, "auto_hold")

    return summary
