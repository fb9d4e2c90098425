import logging
from contextlib import closing
from importlib.util import find_spec
from typing import List, Optional, Sequence

from budget_hierarchy.core.allocation.store import BudgetDistributionRepository
from budget_hierarchy.core.models import (
    AllocationNode,
    AllocationNodeDraft,
    MediaLineRef,
    MediaPlanRecord,
)
from budget_hierarchy.infrastructure.distributions.rows import (
    distribution_params,
    media_line_params,
    new_distribution_id,
    plan_params,
    to_distribution,
    to_media_line,
    to_plan,
)
from budget_hierarchy.infrastructure.postgres_migrations import (
    DISTRIBUTIONS_NAMESPACE,
    apply_postgres_migrations,
)

logger = logging.getLogger(__name__)

_INSERT_DISTRIBUTION = """
    INSERT INTO plan_budget_distributions (
        distribution_id,
        media_plan_id,
        distribution_type,
        reference_id,
        percentage,
        amount,
        parent_distribution_id,
        start_date,
        end_date
    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
"""

_INSERT_MEDIA_LINE = """
    INSERT INTO media_lines (
        media_plan_id,
        line_id,
        budget,
        subdivision_id,
        moment_id,
        funnel_stage_id,
        start_date,
        end_date,
        line_code,
        platform
    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
"""


class PostgresBudgetDistributionRepository(BudgetDistributionRepository):
    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("DISTRIBUTION_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("DISTRIBUTION_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._init_db()

    def list_distributions(self, plan_id: str) -> List[AllocationNode]:
        query = """
            SELECT
                distribution_id,
                media_plan_id,
                distribution_type,
                reference_id,
                percentage,
                amount,
                parent_distribution_id,
                start_date,
                end_date
            FROM plan_budget_distributions
            WHERE media_plan_id = %s
            ORDER BY sequence_no ASC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, (plan_id,)).fetchall()
        return [to_distribution(row) for row in rows]

    def delete_distributions(self, plan_id: str) -> int:
        query = "DELETE FROM plan_budget_distributions WHERE media_plan_id = %s"
        with closing(self._connect()) as connection:
            cursor = connection.execute(query, (plan_id,))
            connection.commit()
            return cursor.rowcount

    def insert_distributions(
        self, plan_id: str, drafts: Sequence[AllocationNodeDraft]
    ) -> List[str]:
        ids = [new_distribution_id() for _ in drafts]
        with closing(self._connect()) as connection:
            try:
                for distribution_id, draft in zip(ids, drafts):
                    connection.execute(
                        _INSERT_DISTRIBUTION, distribution_params(plan_id, distribution_id, draft)
                    )
                connection.commit()
            except Exception:
                connection.rollback()
                raise
        return ids

    def list_media_lines(self, plan_id: str) -> List[MediaLineRef]:
        query = """
            SELECT
                line_id,
                budget,
                subdivision_id,
                moment_id,
                funnel_stage_id,
                start_date,
                end_date,
                line_code,
                platform
            FROM media_lines
            WHERE media_plan_id = %s
            ORDER BY sequence_no ASC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, (plan_id,)).fetchall()
        return [to_media_line(row) for row in rows]

    def replace_media_lines(self, plan_id: str, lines: Sequence[MediaLineRef]) -> None:
        with closing(self._connect()) as connection:
            try:
                connection.execute("DELETE FROM media_lines WHERE media_plan_id = %s", (plan_id,))
                for line in lines:
                    connection.execute(_INSERT_MEDIA_LINE, media_line_params(plan_id, line))
                connection.commit()
            except Exception:
                connection.rollback()
                raise

    def delete_media_lines(self, plan_id: str, line_ids: Sequence[str]) -> int:
        if not line_ids:
            return 0
        query = "DELETE FROM media_lines WHERE media_plan_id = %s AND line_id = ANY(%s)"
        with closing(self._connect()) as connection:
            cursor = connection.execute(query, (plan_id, list(line_ids)))
            connection.commit()
            return cursor.rowcount

    def get_plan(self, plan_id: str) -> Optional[MediaPlanRecord]:
        query = """
            SELECT
                plan_id,
                total_budget,
                currency,
                hierarchy_order_json,
                dimension_names_json,
                updated_at
            FROM media_plans
            WHERE plan_id = %s
        """
        with closing(self._connect()) as connection:
            row = connection.execute(query, (plan_id,)).fetchone()
        return to_plan(row)

    def save_plan(self, plan: MediaPlanRecord) -> None:
        query = """
            INSERT INTO media_plans (
                plan_id,
                total_budget,
                currency,
                hierarchy_order_json,
                dimension_names_json,
                updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (plan_id) DO UPDATE SET
                total_budget=excluded.total_budget,
                currency=excluded.currency,
                hierarchy_order_json=excluded.hierarchy_order_json,
                dimension_names_json=excluded.dimension_names_json,
                updated_at=excluded.updated_at
        """
        with closing(self._connect()) as connection:
            connection.execute(query, plan_params(plan))
            connection.commit()

    def _connect(self):
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def _init_db(self) -> None:
        try:
            connection = self._connect()
        except Exception as exc:
            logger.error(
                "PostgreSQL connection failed",
                extra={"extra_fields": {"error": type(exc).__name__}},
            )
            raise RuntimeError("DISTRIBUTION_POSTGRES_CONNECTION_FAILED") from exc
        with closing(connection):
            apply_postgres_migrations(connection=connection, namespace=DISTRIBUTIONS_NAMESPACE)


def _import_psycopg():
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row
