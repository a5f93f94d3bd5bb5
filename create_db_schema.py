import asyncio

from config.settings import Settings
from core.db import create_engine, create_session_maker
from services.storage_service import StorageService


async def main():
    """
    One-time script to create the subscriptions and summaries tables in the
    configured database. The service also does this on startup.
    """
    settings = Settings()
    engine = create_engine(settings.DATABASE_URL)
    storage = StorageService(create_session_maker(engine))
    await storage.create_schema(engine)
    await engine.dispose()
    print(f"Database schema created/updated at {settings.DATABASE_URL}")


if __name__ == "__main__":
    asyncio.run(main())
