import logging
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import async_session
from app.services.notification_service import NotificationDispatcher
from app.utils.exceptions import DomainError
from app.utils.logging_config import bank_id as bank_log_id

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.
    Commits on success, rolls back on any error and always closes.
    """
    session = async_session()
    logger.debug("Database session created")
    try:
        yield session

        if session.in_transaction():
            await session.commit()
            logger.debug("Database transaction committed")

    except DomainError:
        # Domain errors are rendered by the exception handler; the services
        # have already committed any side effect that must survive them.
        if session.in_transaction():
            await session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Database error in get_db: {type(e).__name__}: {e}")
        if session.in_transaction():
            await session.rollback()
        raise

    finally:
        await session.close()
        logger.debug("Database session closed")


def get_notifier(request: Request) -> NotificationDispatcher:
    """The dispatcher is created once in the app lifespan and kept on app.state."""
    return request.app.state.notifier


async def bind_bank_log_context(request: Request) -> None:
    """Tag log records of bank-scoped routes with the bank id from the path."""
    bank = request.path_params.get("bank_id")
    if bank:
        bank_log_id.set(str(bank))
