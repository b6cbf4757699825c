"""
Rule Store Gateway - typed reads of rule definitions, append-only history writes
===============================================================================
Rules and connection descriptors are read fresh on every call; nothing is
cached between jobs because rule configuration can change between runs.
"""
import json
import logging
import os
from typing import Dict, Optional, Union

import asyncpg

from alerts_core.errors import ConfigIncompleteError, NotFoundError, PersistenceError
from alerts_core.models import (
    ConnectionDescriptor,
    CustomKpiRule,
    EvaluationTarget,
    HistoryLogEntry,
    HistorySource,
    MetricRule,
    RecordId,
    RuleKind,
)

logger = logging.getLogger(__name__)

AnyRule = Union[MetricRule, CustomKpiRule]


class RuleRepository:
    """
    Async access to the database of record

    Tables:
        autonomis_user_metric_rule_table  metric rules
        autonomis_user_metrics_table      saved metrics (name, sql, notebook)
        autonomis_user_notebook           notebooks (database link)
        autonomis_user_database           connection blobs
        autonomis_custom_kpi_alerts       custom KPI rules
        alert_history_logs                rule run history
        report_history_logs               report run history
    """

    HISTORY_TABLES: Dict[HistorySource, tuple] = {
        HistorySource.RULE: ('alert_history_logs', 'rule_id'),
        HistorySource.REPORT: ('report_history_logs', 'report_id'),
    }

    def __init__(self, db_dsn: str = None, min_size: int = 1, max_size: int = 5):
        """
        Args:
            db_dsn: Rule store connection string (defaults to RULE_STORE_DSN env var)
            min_size: Minimum pool size
            max_size: Maximum pool size
        """
        self.db_dsn = db_dsn or os.getenv('RULE_STORE_DSN')
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    async def get_pool(self) -> asyncpg.Pool:
        """Get or create database connection pool"""
        if not self._pool:
            self._pool = await asyncpg.create_pool(
                self.db_dsn, min_size=self.min_size, max_size=self.max_size
            )
        return self._pool

    async def close(self):
        """Close database connections"""
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def _fetchrow(self, query: str, *args) -> Optional[Dict]:
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(query, *args)
        return dict(row) if row else None

    # =====================================================
    # RULE READS
    # =====================================================

    async def fetch_rule(self, kind: RuleKind, rule_id: RecordId) -> AnyRule:
        """
        Fetch a rule by id.

        Raises:
            NotFoundError: no rule with this id
        """
        if kind == RuleKind.METRIC:
            return await self._fetch_metric_rule(rule_id)
        return await self._fetch_custom_kpi(rule_id)

    async def _fetch_metric_rule(self, rule_id: RecordId) -> MetricRule:
        row = await self._fetchrow("""
            SELECT id, user_id, "isActive" AS is_active, metric_table_id, operator, value
            FROM autonomis_user_metric_rule_table
            WHERE id = $1
        """, rule_id)

        if not row:
            raise NotFoundError(f"Metric Rule {rule_id} not found.")

        return MetricRule(
            id=row['id'],
            owner_id=row['user_id'],
            is_active=bool(row['is_active']),
            metric_id=row['metric_table_id'],
            operator=row['operator'],
            threshold=row['value'],
        )

    async def _fetch_custom_kpi(self, rule_id: RecordId) -> CustomKpiRule:
        row = await self._fetchrow("""
            SELECT id, user_id, is_active, name, sql, condition_operator,
                   threshold_value, database_id
            FROM autonomis_custom_kpi_alerts
            WHERE id = $1
        """, rule_id)

        if not row:
            raise NotFoundError(f"Custom KPI Rule {rule_id} not found.")

        return CustomKpiRule(
            id=row['id'],
            owner_id=row['user_id'],
            is_active=bool(row['is_active']),
            name=row['name'],
            sql=row['sql'],
            operator=row['condition_operator'],
            threshold=row['threshold_value'],
            database_id=row['database_id'],
        )

    async def resolve_target(self, rule: AnyRule) -> EvaluationTarget:
        """
        Resolve the SQL and connection descriptor an active rule is polled with.

        Raises:
            ConfigIncompleteError: any link of the metric/notebook/database
                chain is missing, or the connection blob is unusable
        """
        if isinstance(rule, MetricRule):
            return await self._resolve_metric_target(rule)
        return await self._resolve_kpi_target(rule)

    async def _resolve_metric_target(self, rule: MetricRule) -> EvaluationTarget:
        if rule.metric_id is None:
            raise ConfigIncompleteError(f"Data config for Metric Rule {rule.id} is incomplete.")

        row = await self._fetchrow("""
            SELECT m.name, m.sql, d.connection_string
            FROM autonomis_user_metrics_table m
            LEFT JOIN autonomis_user_notebook n ON n.id = m.notebook_id
            LEFT JOIN autonomis_user_database d ON d.id = n.database_id
            WHERE m.id = $1
        """, rule.metric_id)

        if not row or not row['connection_string'] or not row['sql']:
            raise ConfigIncompleteError(f"Data config for Metric Rule {rule.id} is incomplete.")

        return EvaluationTarget(
            name=row['name'] or f"Metric Rule {rule.id}",
            sql=row['sql'],
            connection=ConnectionDescriptor.from_blob(row['connection_string']),
        )

    async def _resolve_kpi_target(self, rule: CustomKpiRule) -> EvaluationTarget:
        if rule.database_id is None or not rule.sql:
            raise ConfigIncompleteError(f"Data config for KPI {rule.id} is incomplete.")

        row = await self._fetchrow("""
            SELECT connection_string
            FROM autonomis_user_database
            WHERE id = $1
        """, rule.database_id)

        if not row or not row['connection_string']:
            raise ConfigIncompleteError(f"Database connection for KPI {rule.id} not found.")

        return EvaluationTarget(
            name=rule.name or f"Custom KPI {rule.id}",
            sql=rule.sql,
            connection=ConnectionDescriptor.from_blob(row['connection_string']),
        )

    # =====================================================
    # HISTORY WRITES
    # =====================================================

    async def append_history(self, entry: HistoryLogEntry) -> None:
        """
        Insert one history record. Records are never updated afterwards.

        Raises:
            PersistenceError: the insert failed
        """
        table, id_column = self.HISTORY_TABLES[entry.source]

        try:
            pool = await self.get_pool()
            async with pool.acquire() as conn:
                await conn.execute(f"""
                    INSERT INTO {table} ({id_column}, status, run_id, details, user_id)
                    VALUES ($1, $2, $3, $4::jsonb, $5)
                """,
                    entry.rule_id,
                    entry.status.value,
                    entry.run_id,
                    json.dumps(entry.details),
                    entry.owner_id
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise PersistenceError(f"Failed to write {table} entry for {entry.rule_id}: {e}") from e

        logger.info(f"Recorded {entry.status.value} in {table} for {id_column}={entry.rule_id}")
