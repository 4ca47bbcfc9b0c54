import asyncio
import sys
from pathlib import Path


async def recreate_db():
    backend_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(backend_root))

    from app.config import settings  # type: ignore
    if settings.DATABASE_URL:
        raise SystemExit("DATABASE_URL is set; refusing to drop a non-SQLite database")

    # Remove existing SQLite file
    db_path = Path(settings.DATABASE_PATH).resolve()
    if db_path.exists():
        db_path.unlink()

    # Import all models to register metadata tables
    from app.database import create_tables  # type: ignore
    import models.profile      # noqa: F401
    import models.feed         # noqa: F401
    import models.bookmarks    # noqa: F401
    import models.chat         # noqa: F401
    import models.notify       # noqa: F401
    import models.invites      # noqa: F401
    import models.points       # noqa: F401
    import models.marketplace  # noqa: F401
    await create_tables()
    return db_path


if __name__ == '__main__':
    path = asyncio.run(recreate_db())
    print(f'Database recreated at {path}.')
