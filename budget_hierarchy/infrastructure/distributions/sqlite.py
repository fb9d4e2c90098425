import sqlite3
from contextlib import closing
from pathlib import Path
from threading import Lock
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
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
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
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


class SqliteBudgetDistributionRepository(BudgetDistributionRepository):
    def __init__(self, *, database_path: str) -> None:
        self._lock = Lock()
        self._database_path = database_path
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
            WHERE media_plan_id = ?
            ORDER BY sequence_no ASC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, (plan_id,)).fetchall()
        return [to_distribution(row) for row in rows]

    def delete_distributions(self, plan_id: str) -> int:
        with self._lock, closing(self._connect()) as connection:
            cursor = connection.execute(
                "DELETE FROM plan_budget_distributions WHERE media_plan_id = ?", (plan_id,)
            )
            connection.commit()
            return cursor.rowcount

    def insert_distributions(
        self, plan_id: str, drafts: Sequence[AllocationNodeDraft]
    ) -> List[str]:
        ids = [new_distribution_id() for _ in drafts]
        params = [
            distribution_params(plan_id, distribution_id, draft)
            for distribution_id, draft in zip(ids, drafts)
        ]
        with self._lock, closing(self._connect()) as connection:
            try:
                connection.executemany(_INSERT_DISTRIBUTION, params)
                connection.commit()
            except sqlite3.Error:
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
            WHERE media_plan_id = ?
            ORDER BY sequence_no ASC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, (plan_id,)).fetchall()
        return [to_media_line(row) for row in rows]

    def replace_media_lines(self, plan_id: str, lines: Sequence[MediaLineRef]) -> None:
        with self._lock, closing(self._connect()) as connection:
            try:
                connection.execute("DELETE FROM media_lines WHERE media_plan_id = ?", (plan_id,))
                connection.executemany(
                    _INSERT_MEDIA_LINE, [media_line_params(plan_id, line) for line in lines]
                )
                connection.commit()
            except sqlite3.Error:
                connection.rollback()
                raise

    def delete_media_lines(self, plan_id: str, line_ids: Sequence[str]) -> int:
        if not line_ids:
            return 0
        placeholders = ", ".join("?" for _ in line_ids)
        query = f"DELETE FROM media_lines WHERE media_plan_id = ? AND line_id IN ({placeholders})"
        with self._lock, closing(self._connect()) as connection:
            cursor = connection.execute(query, (plan_id, *line_ids))
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
            WHERE plan_id = ?
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
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(plan_id) DO UPDATE SET
                total_budget=excluded.total_budget,
                currency=excluded.currency,
                hierarchy_order_json=excluded.hierarchy_order_json,
                dimension_names_json=excluded.dimension_names_json,
                updated_at=excluded.updated_at
        """
        with self._lock, closing(self._connect()) as connection:
            connection.execute(query, plan_params(plan))
            connection.commit()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path)
        connection.row_factory = sqlite3.Row
        return connection

    def _init_db(self) -> None:
        Path(self._database_path).parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as connection:
            connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS media_plans (
                    plan_id TEXT PRIMARY KEY,
                    total_budget TEXT NOT NULL,
                    currency TEXT NOT NULL,
                    hierarchy_order_json TEXT NOT NULL,
                    dimension_names_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS plan_budget_distributions (
                    sequence_no INTEGER PRIMARY KEY AUTOINCREMENT,
                    distribution_id TEXT NOT NULL UNIQUE,
                    media_plan_id TEXT NOT NULL,
                    distribution_type TEXT NOT NULL,
                    reference_id TEXT NULL,
                    percentage TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    parent_distribution_id TEXT NULL,
                    start_date TEXT NULL,
                    end_date TEXT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_plan_budget_distributions_plan
                    ON plan_budget_distributions (media_plan_id);

                CREATE TABLE IF NOT EXISTS media_lines (
                    sequence_no INTEGER PRIMARY KEY AUTOINCREMENT,
                    media_plan_id TEXT NOT NULL,
                    line_id TEXT NOT NULL,
                    budget TEXT NULL,
                    subdivision_id TEXT NULL,
                    moment_id TEXT NULL,
                    funnel_stage_id TEXT NULL,
                    start_date TEXT NULL,
                    end_date TEXT NULL,
                    line_code TEXT NULL,
                    platform TEXT NULL,
                    UNIQUE (media_plan_id, line_id)
                );
                """
            )
            connection.commit()
