from datetime import date, datetime
from typing import Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import async_session as async_sessionmaker
from app.models.donor import Donor
from app.services.blood_unit_service import BloodUnitService
from app.services.donor_request_service import DonorRequestService
from app.services.inventory_service import BloodInventoryService
from app.services.notification_service import NotificationDispatcher, NotificationTemplate
from app.utils.eligibility import eligibility_cutoff
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

# Global scheduler instance
scheduler = None


async def sweep_expired_units(as_of: Optional[date] = None, session: Optional[AsyncSession] = None) -> int:
    """Mark every AVAILABLE unit past its expiry date as EXPIRED, in all banks."""
    if session is not None:
        return await BloodUnitService(session).sweep_expired(as_of=as_of)

    async with async_sessionmaker() as db:
        swept = await BloodUnitService(db).sweep_expired(as_of=as_of)
    logger.info(f"Expiry sweep finished, {swept} units expired")
    return swept


async def expire_stale_requests(
    now: Optional[datetime] = None, session: Optional[AsyncSession] = None
) -> int:
    if session is not None:
        return await DonorRequestService(session).expire_stale_requests(now)

    async with async_sessionmaker() as db:
        return await DonorRequestService(db).expire_stale_requests(now)


async def send_eligibility_reminders(
    notifier: NotificationDispatcher,
    today: Optional[date] = None,
    session: Optional[AsyncSession] = None,
) -> int:
    """Remind donors whose last donation was exactly one donation gap ago."""

    async def _run(db: AsyncSession) -> int:
        became_eligible_on = eligibility_cutoff(today)
        result = await db.execute(
            select(Donor).where(
                Donor.last_donation_date == became_eligible_on,
                or_(
                    Donor.is_available_for_contact.is_(None),
                    Donor.is_available_for_contact.is_(True),
                ),
            )
        )
        donors = result.scalars().all()
        for donor in donors:
            notifier.dispatch(
                NotificationTemplate.ELIGIBILITY_REMINDER,
                {"phoneNumber": donor.phone, "donorName": donor.name},
            )
        logger.info(f"Queued eligibility reminders for {len(donors)} donors")
        return len(donors)

    if session is not None:
        return await _run(session)
    async with async_sessionmaker() as db:
        return await _run(db)


async def send_blood_shortage_alerts(
    notifier: NotificationDispatcher,
    threshold: Optional[int] = None,
    today: Optional[date] = None,
    session: Optional[AsyncSession] = None,
) -> int:
    """For each low-stock record, alert eligible contactable donors of that type in the bank's city."""

    async def _run(db: AsyncSession) -> int:
        alerts = await BloodInventoryService(db).get_low_stock_alerts(threshold)
        cutoff = eligibility_cutoff(today)
        notified = 0
        for alert in alerts:
            result = await db.execute(
                select(Donor).where(
                    Donor.blood_type == alert["bloodType"],
                    Donor.city == alert["city"],
                    or_(Donor.last_donation_date.is_(None), Donor.last_donation_date <= cutoff),
                    or_(
                        Donor.is_available_for_contact.is_(None),
                        Donor.is_available_for_contact.is_(True),
                    ),
                )
            )
            for donor in result.scalars().all():
                notifier.dispatch(
                    NotificationTemplate.BLOOD_SHORTAGE_ALERT,
                    {
                        "phoneNumber": donor.phone,
                        "donorName": donor.name,
                        "bloodType": alert["bloodType"],
                        "city": alert["city"],
                        "bloodBankName": alert["bloodBankName"],
                    },
                )
                notified += 1
        logger.info(f"Queued {notified} blood shortage alerts for {len(alerts)} low-stock records")
        return notified

    if session is not None:
        return await _run(session)
    async with async_sessionmaker() as db:
        return await _run(db)


def start_scheduler(notifier: NotificationDispatcher):
    """Start the daily maintenance jobs"""
    global scheduler

    if scheduler is not None:
        logger.info("Scheduler already running")
        return

    scheduler = AsyncIOScheduler(
        executors={"default": AsyncIOExecutor()},
        job_defaults={
            "coalesce": True,
            "max_instances": 1,  # Prevent multiple instances of same job
            "misfire_grace_time": 3600,
        },
    )

    scheduler.add_job(
        sweep_expired_units,
        trigger="cron",
        hour=settings.DAILY_JOB_HOUR,
        minute=0,
        id="sweep_expired_units",
        replace_existing=True,
    )
    scheduler.add_job(
        expire_stale_requests,
        trigger="cron",
        hour=settings.DAILY_JOB_HOUR,
        minute=5,
        id="expire_stale_requests",
        replace_existing=True,
    )
    scheduler.add_job(
        send_eligibility_reminders,
        trigger="cron",
        hour=settings.DAILY_JOB_HOUR,
        minute=10,
        kwargs={"notifier": notifier},
        id="eligibility_reminders",
        replace_existing=True,
    )
    scheduler.add_job(
        send_blood_shortage_alerts,
        trigger="cron",
        hour=settings.DAILY_JOB_HOUR,
        minute=15,
        kwargs={"notifier": notifier},
        id="blood_shortage_alerts",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(f"Daily jobs scheduled at {settings.DAILY_JOB_HOUR:02d}:00")


def stop_scheduler():
    """Stop the scheduler gracefully"""
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Scheduler stopped")
