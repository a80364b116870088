"""ConceptStore SQLite 实现 -- ad_concepts 表"""

import aiosqlite

from ..models.entities import Concept
from ..models.enums import ACTIVE_STATES, TaskStatus
from ..utils import from_db_json, from_db_ts, to_db_json, to_db_ts

_ACTIVE = tuple(sorted(s.value for s in ACTIVE_STATES))


class SqliteConceptStore:
    """ConceptStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_concept(self, concept: Concept) -> None:
        await self._conn.execute(
            """
            INSERT INTO ad_concepts (id, user_id, ad_archive_id, task_id, page_name,
                                     status, concept_json, error_message,
                                     created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                concept.id,
                concept.user_id,
                concept.ad_archive_id,
                concept.task_id,
                concept.page_name,
                concept.status.value,
                to_db_json(concept.concept_json),
                concept.error_message,
                to_db_ts(concept.created_at),
                to_db_ts(concept.updated_at),
            ),
        )

    async def get_concept(self, concept_id: str) -> Concept | None:
        cursor = await self._conn.execute(
            "SELECT * FROM ad_concepts WHERE id = ?",
            (concept_id,),
        )
        row = await cursor.fetchone()
        return None if row is None else self._row_to_concept(row)

    async def get_by_task_id(self, task_id: str) -> Concept | None:
        """根据外部 task_id 反查概念（同一任务只对应一行）"""
        cursor = await self._conn.execute(
            "SELECT * FROM ad_concepts WHERE task_id = ? ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (task_id,),
        )
        row = await cursor.fetchone()
        return None if row is None else self._row_to_concept(row)

    async def list_by_ids(self, concept_ids: list[str]) -> list[Concept]:
        """按请求顺序返回概念，不存在的 ID 被省略"""
        if not concept_ids:
            return []
        unique_ids = list(dict.fromkeys(concept_ids))
        placeholders = ", ".join("?" for _ in unique_ids)
        cursor = await self._conn.execute(
            f"SELECT * FROM ad_concepts WHERE id IN ({placeholders})",
            unique_ids,
        )
        rows = await cursor.fetchall()
        by_id = {row["id"]: self._row_to_concept(row) for row in rows}
        return [by_id[cid] for cid in concept_ids if cid in by_id]

    async def list_for_user(
        self,
        user_id: str,
        ad_archive_ids: list[str] | None = None,
    ) -> list[Concept]:
        """查询用户的概念，按 created_at 倒序"""
        sql = "SELECT * FROM ad_concepts WHERE user_id = ?"
        params: list[str] = [user_id]
        if ad_archive_ids is not None:
            if not ad_archive_ids:
                return []
            sql += f" AND ad_archive_id IN ({', '.join('?' for _ in ad_archive_ids)})"
            params.extend(ad_archive_ids)
        sql += " ORDER BY created_at DESC, rowid DESC"
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_concept(row) for row in rows]

    async def latest_for_ad(self, user_id: str, ad_archive_id: str) -> Concept | None:
        cursor = await self._conn.execute(
            """
            SELECT * FROM ad_concepts
            WHERE user_id = ? AND ad_archive_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (user_id, ad_archive_id),
        )
        row = await cursor.fetchone()
        return None if row is None else self._row_to_concept(row)

    async def finalize_if_active(
        self,
        concept_id: str,
        status: TaskStatus,
        *,
        concept_json: dict | None,
        error_message: str | None,
        updated_at: str,
    ) -> bool:
        """仅当概念仍处于非终态时写入终态；concept_json 为 None 时保留原值

        Returns:
            True 如果本次写入生效
        """
        cursor = await self._conn.execute(
            f"""
            UPDATE ad_concepts
            SET status = ?,
                concept_json = COALESCE(?, concept_json),
                error_message = ?,
                updated_at = ?
            WHERE id = ? AND status IN ({', '.join('?' for _ in _ACTIVE)})
            """,
            (
                status.value,
                None if concept_json is None else to_db_json(concept_json),
                error_message,
                updated_at,
                concept_id,
                *_ACTIVE,
            ),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_concept(row: aiosqlite.Row) -> Concept:
        return Concept(
            id=row["id"],
            user_id=row["user_id"],
            ad_archive_id=row["ad_archive_id"],
            task_id=row["task_id"],
            page_name=row["page_name"],
            status=row["status"],
            concept_json=from_db_json(row["concept_json"], {}),
            error_message=row["error_message"],
            created_at=from_db_ts(row["created_at"]),
            updated_at=from_db_ts(row["updated_at"]),
        )
