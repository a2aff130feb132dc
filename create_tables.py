#!/usr/bin/env python3
# create_tables.py - Create database tables and the bootstrap admin account
# ============================================================================
import asyncio
import logging

from cvintelligence.core.database import async_session_maker, engine, init_db
from cvintelligence.services.auth import AuthService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_tables():
    try:
        logger.info("🔄 Creating database tables...")
        await init_db()
        async with async_session_maker() as db:
            admin = await AuthService(db).ensure_admin_user()
        logger.info(f"✅ Database tables created successfully! Admin: {admin.email}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(create_tables())
