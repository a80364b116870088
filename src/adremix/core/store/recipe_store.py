"""RecipeStore SQLite 实现 -- ad_recipes 表"""

import aiosqlite

from ..models.entities import Recipe
from ..models.enums import ACTIVE_STATES, TaskStatus
from ..utils import from_db_json, from_db_ts, to_db_json, to_db_ts

_ACTIVE = tuple(sorted(s.value for s in ACTIVE_STATES))


class SqliteRecipeStore:
    """RecipeStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_recipe(self, recipe: Recipe) -> None:
        await self._conn.execute(
            """
            INSERT INTO ad_recipes (id, user_id, name, concept_ids, product_id,
                                    prompt_json, status, task_id, error_message,
                                    is_generated, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                recipe.id,
                recipe.user_id,
                recipe.name,
                to_db_json(recipe.concept_ids),
                recipe.product_id,
                to_db_json(recipe.prompt_json),
                recipe.status.value,
                recipe.task_id,
                recipe.error_message,
                int(recipe.is_generated),
                to_db_ts(recipe.created_at),
                to_db_ts(recipe.updated_at),
            ),
        )

    async def get_recipe(self, recipe_id: str) -> Recipe | None:
        cursor = await self._conn.execute(
            "SELECT * FROM ad_recipes WHERE id = ?",
            (recipe_id,),
        )
        row = await cursor.fetchone()
        return None if row is None else self._row_to_recipe(row)

    async def get_by_task_id(self, task_id: str) -> Recipe | None:
        cursor = await self._conn.execute(
            "SELECT * FROM ad_recipes WHERE task_id = ? LIMIT 1",
            (task_id,),
        )
        row = await cursor.fetchone()
        return None if row is None else self._row_to_recipe(row)

    async def list_for_user(self, user_id: str) -> list[Recipe]:
        """查询用户的配方，按 created_at 倒序"""
        cursor = await self._conn.execute(
            "SELECT * FROM ad_recipes WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_recipe(row) for row in rows]

    async def finalize_if_active(
        self,
        recipe_id: str,
        status: TaskStatus,
        *,
        prompt_json: dict | None,
        error_message: str | None,
        updated_at: str,
    ) -> bool:
        """仅当配方仍处于非终态时写入终态；prompt_json 为 None 时保留原值"""
        cursor = await self._conn.execute(
            f"""
            UPDATE ad_recipes
            SET status = ?,
                prompt_json = COALESCE(?, prompt_json),
                error_message = ?,
                updated_at = ?
            WHERE id = ? AND status IN ({', '.join('?' for _ in _ACTIVE)})
            """,
            (
                status.value,
                None if prompt_json is None else to_db_json(prompt_json),
                error_message,
                updated_at,
                recipe_id,
                *_ACTIVE,
            ),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_recipe(row: aiosqlite.Row) -> Recipe:
        return Recipe(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            concept_ids=from_db_json(row["concept_ids"], []),
            product_id=row["product_id"],
            prompt_json=from_db_json(row["prompt_json"], {}),
            status=row["status"],
            task_id=row["task_id"],
            error_message=row["error_message"],
            is_generated=bool(row["is_generated"]),
            created_at=from_db_ts(row["created_at"]),
            updated_at=from_db_ts(row["updated_at"]),
        )
