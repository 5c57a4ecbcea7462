# scripts/init_db.py
import sys
from pathlib import Path

# Ensure project root is on the path when running this script directly
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import asyncio

from carshare_activity.config.settings import get_settings
from carshare_activity.infrastructure.database.session import build_engine, create_tables


async def init_db():
    settings = get_settings()
    engine = build_engine(settings.database_url, echo=settings.debug)
    try:
        await create_tables(engine)
        print("Tables created:", settings.database_url.split("@")[-1])
    finally:
        await engine.dispose()

asyncio.run(init_db())
