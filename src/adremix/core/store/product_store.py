"""ProductStore SQLite 实现 -- products 表"""

import aiosqlite

from ..models.entities import Product
from ..utils import from_db_json, from_db_ts, to_db_json, to_db_ts


class SqliteProductStore:
    """ProductStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_product(self, product: Product) -> None:
        await self._conn.execute(
            """
            INSERT INTO products (id, user_id, name, sales_url, details_json,
                                  created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                product.id,
                product.user_id,
                product.name,
                product.sales_url,
                to_db_json(product.details_json),
                to_db_ts(product.created_at),
                to_db_ts(product.updated_at),
            ),
        )

    async def get_product(self, product_id: str) -> Product | None:
        cursor = await self._conn.execute(
            "SELECT * FROM products WHERE id = ?",
            (product_id,),
        )
        row = await cursor.fetchone()
        return None if row is None else self._row_to_product(row)

    async def list_for_user(self, user_id: str) -> list[Product]:
        cursor = await self._conn.execute(
            "SELECT * FROM products WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_product(row) for row in rows]

    @staticmethod
    def _row_to_product(row: aiosqlite.Row) -> Product:
        return Product(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            sales_url=row["sales_url"],
            details_json=from_db_json(row["details_json"], {}),
            created_at=from_db_ts(row["created_at"]),
            updated_at=from_db_ts(row["updated_at"]),
        )
