"""SQLite 数据库初始化

PRAGMA 配置 + 五张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id         TEXT PRIMARY KEY,
    local_id        TEXT NOT NULL UNIQUE,
    subject_kind    TEXT NOT NULL,
    subject         TEXT NOT NULL DEFAULT '{}',
    status          TEXT NOT NULL DEFAULT 'pending',
    result_payload  TEXT,
    error_message   TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, created_at);",
]

# ad_concepts 表 DDL
_CONCEPTS_DDL = """
CREATE TABLE IF NOT EXISTS ad_concepts (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    ad_archive_id   TEXT NOT NULL,
    task_id         TEXT NOT NULL,
    page_name       TEXT NOT NULL DEFAULT '',
    status          TEXT NOT NULL DEFAULT 'pending',
    concept_json    TEXT NOT NULL DEFAULT '{}',
    error_message   TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

_CONCEPTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_concepts_user_ad ON ad_concepts(user_id, ad_archive_id);",
    "CREATE INDEX IF NOT EXISTS idx_concepts_task_id ON ad_concepts(task_id);",
]

# ad_recipes 表 DDL
_RECIPES_DDL = """
CREATE TABLE IF NOT EXISTS ad_recipes (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    name            TEXT NOT NULL,
    concept_ids     TEXT NOT NULL DEFAULT '[]',
    product_id      TEXT NOT NULL,
    prompt_json     TEXT NOT NULL DEFAULT '{}',
    status          TEXT NOT NULL DEFAULT 'completed',
    task_id         TEXT,
    error_message   TEXT,
    is_generated    INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

_RECIPES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_recipes_user_id ON ad_recipes(user_id, created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_recipes_task_id ON ad_recipes(task_id);",
]

# products 表 DDL
_PRODUCTS_DDL = """
CREATE TABLE IF NOT EXISTS products (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    name            TEXT NOT NULL,
    sales_url       TEXT NOT NULL,
    details_json    TEXT NOT NULL DEFAULT '{}',
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

# workflows 表 DDL
_WORKFLOWS_DDL = """
CREATE TABLE IF NOT EXISTS workflows (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    name            TEXT NOT NULL,
    ads             TEXT NOT NULL DEFAULT '[]',
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

_OWNER_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_products_user_id ON products(user_id, created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_workflows_user_id ON workflows(user_id, created_at DESC);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    for ddl in (_TASKS_DDL, _CONCEPTS_DDL, _RECIPES_DDL, _PRODUCTS_DDL, _WORKFLOWS_DDL):
        await conn.execute(ddl)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _CONCEPTS_INDEXES + _RECIPES_INDEXES + _OWNER_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
