"""
Database setup tool.

Creates the tables, seeds the rotation settings row and optionally a
disabled demo provider per vendor kind.
"""
import argparse
import asyncio
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import inspect, select

from keyhub.core.database import AsyncSessionLocal, drop_db, engine, init_db
from keyhub.core.config import settings
from keyhub.core.logger import get_logger
from keyhub.models import (
    Credential,
    Provider,
    ProviderModel,
    RotationSettings,
    RotationStrategy,
    VendorKind
)

logger = get_logger(__name__)


async def check_tables_exist():
    async with engine.begin() as conn:
        return await conn.run_sync(lambda connection: inspect(connection).get_table_names())


async def seed_rotation_settings() -> bool:
    """Create the rotation settings singleton if it is missing."""
    async with AsyncSessionLocal() as session:
        existing = await session.scalar(select(RotationSettings.id).limit(1))
        if existing is not None:
            return False
        
        session.add(RotationSettings(strategy=RotationStrategy.PER_PROVIDER, fallback_enabled=True))
        await session.commit()
    
    logger.info("Rotation settings seeded", strategy=RotationStrategy.PER_PROVIDER.value)
    return True


DEMO_PROVIDERS = [
    {
        "name": "gemini-demo",
        "vendor_kind": VendorKind.GOOGLE,
        "default_model": "gemini-1.5-flash",
        "priority": 100,
        "models": ["gemini-1.5-flash", "gemini-1.5-pro"],
    },
    {
        "name": "openai-demo",
        "vendor_kind": VendorKind.OPENAI_COMPATIBLE,
        "default_model": "gpt-4o-mini",
        "priority": 90,
        "models": ["gpt-4o-mini", "gpt-4o"],
    },
    {
        "name": "anthropic-demo",
        "vendor_kind": VendorKind.ANTHROPIC,
        "default_model": "claude-3-5-haiku-latest",
        "priority": 80,
        "models": ["claude-3-5-haiku-latest"],
    },
]


async def seed_demo_data() -> bool:
    """Add disabled demo providers; skipped when any provider exists."""
    async with AsyncSessionLocal() as session:
        if await session.scalar(select(Provider.id).limit(1)) is not None:
            logger.info("Providers already present, skipping demo data")
            return False
        
        for demo in DEMO_PROVIDERS:
            provider = Provider(
                name=demo["name"],
                vendor_kind=demo["vendor_kind"],
                default_model=demo["default_model"],
                priority=demo["priority"],
                # Disabled until real keys are configured
                is_active=False,
            )
            provider.models = [ProviderModel(model_id=model_id) for model_id in demo["models"]]
            provider.credentials = [
                Credential(name=f"{demo['name']}-key", api_key="replace-me", priority=10)
            ]
            session.add(provider)
        
        await session.commit()
    
    logger.info("Demo providers added", count=len(DEMO_PROVIDERS))
    logger.warning("Demo providers are disabled; set real API keys before enabling them")
    return True


async def main():
    parser = argparse.ArgumentParser(description="KeyHub database setup")
    parser.add_argument(
        "action",
        choices=["init", "reset", "check", "sample"],
        help="init=create tables, reset=drop and recreate, check=list tables, sample=add demo providers"
    )
    parser.add_argument("--force", action="store_true", help="Skip the reset confirmation")
    args = parser.parse_args()
    
    logger.info(f"Database: {settings.database_url}")
    
    if args.action == "check":
        tables = await check_tables_exist()
        print(f"\nTables ({len(tables)}):")
        for table in tables:
            print(f"  - {table}")
    
    elif args.action == "init":
        await init_db()
        await seed_rotation_settings()
        print("\nDatabase ready. Use 'python scripts/init_db.py sample' to add demo providers")
    
    elif args.action == "reset":
        if not args.force:
            confirm = input("This deletes all data. Type 'yes' to continue: ")
            if confirm.lower() != "yes":
                print("Cancelled")
                return
        
        await drop_db()
        await init_db()
        await seed_rotation_settings()
        print("\nDatabase reset")
    
    elif args.action == "sample":
        await init_db()
        await seed_rotation_settings()
        if await seed_demo_data():
            print("\nDemo providers added (disabled)")
    
    await engine.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nCancelled")
    except Exception as e:
        logger.error(f"Setup failed: {str(e)}", exc_info=True)
        sys.exit(1)
