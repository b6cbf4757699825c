"""
Metric Poller - runs a rule's SQL against the user's database
=============================================================
Each poll opens its own connection pool, executes exactly one query and
tears the pool down again, whatever the outcome. Pools are never shared
between jobs.
"""
import logging
import math
import ssl
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

import asyncpg

from alerts_core.errors import PollError
from alerts_core.models import ConnectionDescriptor, PollResult

logger = logging.getLogger(__name__)


def build_ssl_context(descriptor: ConnectionDescriptor):
    """TLS without certificate verification, or False when disabled"""
    if descriptor.ssl_mode == 'disable':
        return False

    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def extract_scalar(rows: Sequence[Any]) -> float:
    """
    First column of the first row as a finite float.

    Raises:
        PollError: no rows, or the value is not numeric
    """
    if not rows:
        raise PollError("SQL query returned no rows.")

    try:
        raw = rows[0][0]
    except (IndexError, KeyError, TypeError):
        raise PollError("SQL query did not return a numeric value.") from None

    value = _to_float(raw)
    if value is None or not math.isfinite(value):
        raise PollError("SQL query did not return a numeric value.")

    return value


def _to_float(raw: Any) -> Optional[float]:
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float, Decimal)):
        return float(raw)
    if isinstance(raw, (str, bytes)):
        try:
            return float(raw.strip())
        except ValueError:
            return None
    return None


class MetricPoller:
    """Executes a metric query and extracts a single numeric value"""

    def __init__(self, command_timeout: Optional[float] = None):
        """
        Args:
            command_timeout: Per-query timeout in seconds (None = no limit)
        """
        self.command_timeout = command_timeout

    def _pool_kwargs(self, descriptor: ConnectionDescriptor) -> Dict[str, Any]:
        return {
            'host': descriptor.host,
            'port': descriptor.port,
            'user': descriptor.user,
            'password': descriptor.password,
            'database': descriptor.database,
            'ssl': build_ssl_context(descriptor),
            'min_size': 1,
            'max_size': 1,
            'command_timeout': self.command_timeout,
        }

    async def poll(self, descriptor: ConnectionDescriptor, sql: str) -> PollResult:
        """
        Run sql on the described database and return its scalar value.

        Raises:
            PollError: connection/query failure, empty result or non-numeric value
        """
        try:
            pool = await asyncpg.create_pool(**self._pool_kwargs(descriptor))
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise PollError(f"Could not connect to {descriptor.host}/{descriptor.database}: {e}") from e

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(sql)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise PollError(f"SQL query failed: {e}") from e
        finally:
            await pool.close()

        value = extract_scalar(rows)
        logger.debug(f"Polled {descriptor.host}/{descriptor.database}: {value}")
        return PollResult(value=value)
