from datetime import datetime, timezone
from sqlalchemy import inspect, text


async def ensure_migrations_table(conn):
    await conn.execute(text(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            name VARCHAR(128) PRIMARY KEY,
            applied_at VARCHAR(64)
        )
        """
    ))


async def has_migration(conn, name: str) -> bool:
    result = await conn.execute(text("SELECT 1 FROM schema_migrations WHERE name = :name"), {"name": name})
    return result.first() is not None


async def mark_migration(conn, name: str):
    await conn.execute(text("INSERT INTO schema_migrations(name, applied_at) VALUES (:name, :applied_at)"), {
        "name": name,
        "applied_at": datetime.now(timezone.utc).isoformat()
    })


async def column_exists(conn, table: str, column: str) -> bool:
    def _columns(sync_conn):
        return [col["name"] for col in inspect(sync_conn).get_columns(table)]

    return column in await conn.run_sync(_columns)


async def add_deleted_at_to_posts(conn):
    if await column_exists(conn, "posts", "deleted_at"):
        return
    await conn.execute(text("ALTER TABLE posts ADD COLUMN deleted_at TIMESTAMP"))


async def add_tracking_number_to_orders(conn):
    if await column_exists(conn, "marketplace_orders", "tracking_number"):
        return
    await conn.execute(text("ALTER TABLE marketplace_orders ADD COLUMN tracking_number VARCHAR(128)"))


async def add_link_preview_domain_to_posts(conn):
    if await column_exists(conn, "posts", "link_preview_domain"):
        return
    await conn.execute(text("ALTER TABLE posts ADD COLUMN link_preview_domain VARCHAR(255)"))


MIGRATIONS = [
    ("202401_add_deleted_at_to_posts", add_deleted_at_to_posts),
    ("202403_add_tracking_number_to_orders", add_tracking_number_to_orders),
    ("202406_add_link_preview_domain_to_posts", add_link_preview_domain_to_posts),
]


async def run_migrations(conn):
    await ensure_migrations_table(conn)
    for name, handler in MIGRATIONS:
        if await has_migration(conn, name):
            continue
        await handler(conn)
        await mark_migration(conn, name)
