# common/db.py
"""
Connection helpers.

Only connection establishment is retried. Business logic that fails inside a
transaction is rolled back and surfaced to the caller as-is.
"""

import logging
import time
from dataclasses import dataclass

from django.conf import settings
from django.db import InterfaceError, OperationalError, connections, transaction

from common.errors import DatabaseUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 0.1
    backoff_factor: float = 2.0
    max_delay: float = 2.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=getattr(settings, "DB_CONNECT_MAX_RETRIES", cls.max_retries),
            base_delay=getattr(settings, "DB_CONNECT_BASE_DELAY", cls.base_delay),
            max_delay=getattr(settings, "DB_CONNECT_MAX_DELAY", cls.max_delay),
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return min(self.base_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)


def ensure_connection(using="default", policy: RetryPolicy | None = None, sleep=time.sleep):
    policy = policy or RetryPolicy.from_settings()
    conn = connections[using]
    last_error = None

    for attempt in range(1, policy.max_retries + 1):
        try:
            conn.ensure_connection()
            if attempt > 1:
                logger.info("Database connection established on attempt %s", attempt)
            return conn
        except (OperationalError, InterfaceError) as exc:
            last_error = exc
            logger.warning(
                "Database connection attempt %s/%s failed: %s",
                attempt, policy.max_retries, exc,
            )
            if attempt < policy.max_retries:
                sleep(policy.delay_for(attempt))

    logger.error(
        "Failed to connect to database after %s attempts: %s",
        policy.max_retries, last_error,
    )
    raise DatabaseUnavailableError(attempts=policy.max_retries, last_error=last_error)


def run_in_transaction(fn, *args, **kwargs):
    """Run ``fn`` as one unit: every write commits together or not at all."""
    with transaction.atomic():
        return fn(*args, **kwargs)
