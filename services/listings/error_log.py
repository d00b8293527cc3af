"""
Persistent error log for admin operations.
Appends ErrorLog rows so failures are reviewable after the process is gone.
"""

import logging
import random
import traceback
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import delete, insert
from sqlalchemy.ext.asyncio import AsyncSession

from services.listings.config import settings
from services.listings.db.models import ErrorLog

logger = logging.getLogger(__name__)

LEVELS = ("error", "warn", "info")

_STDLIB_LEVEL = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
}


class ErrorLogger:
    """
    Usage:
        error_logger = ErrorLogger(session)
        await error_logger.log("Merge failed", error=exc, source="duplicates.merge")

    Never raises. With no session, entries only go to the process log.
    """

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session

    async def log(
        self,
        message: str,
        *,
        error: Optional[BaseException] = None,
        source: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        level: str = "error",
    ) -> Optional[str]:
        """
        Write an error log entry.

        Args:
            message: What was being attempted
            error: Exception to record; its text is appended to the message
                and its traceback stored as stackTrace
            source: Dotted origin tag (e.g. 'duplicates.merge')
            context: Structured details (ids, step, kind)
            level: 'error', 'warn' or 'info'

        Returns:
            ID of the stored entry, or None if nothing was stored
        """
        if level not in LEVELS:
            level = "error"
        full_message = f"{message}: {error}" if error is not None else message
        logger.log(_STDLIB_LEVEL[level], "%s", full_message)

        if self.session is None:
            return None

        stack_trace = None
        if error is not None:
            stack_trace = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        entry_id = str(uuid4())
        now = datetime.now(timezone.utc)
        try:
            await self.session.execute(
                insert(ErrorLog).values(
                    id=entry_id,
                    timestamp=now,
                    level=level,
                    message=full_message,
                    context=context or {},
                    source=source,
                    stackTrace=stack_trace,
                )
            )
            await self.session.commit()

            if random.random() < settings.error_log_cleanup_probability:
                await self.cleanup(now=now)
        except Exception:
            logger.exception("Failed to write error log entry")
            try:
                await self.session.rollback()
            except Exception:
                logger.exception("Rollback after error log failure also failed")
            return None

        return entry_id

    async def cleanup(self, now: Optional[datetime] = None) -> int:
        """Delete entries older than the retention window. Returns rows removed."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=settings.error_log_retention_days)
        result = await self.session.execute(
            delete(ErrorLog).where(ErrorLog.timestamp < cutoff)
        )
        await self.session.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("Error log cleanup removed %d entries older than %s", removed, cutoff)
        return removed
