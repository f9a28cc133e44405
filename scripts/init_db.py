"""
Database initialization script - indexes and core document catalog

Run once per environment (safe to re-run):
    python scripts/init_db.py
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables
load_dotenv()

import logging

from vaultsync.db.mongo import (
    connect_to_mongo,
    close_mongo_connection,
    get_database,
    USERS,
    REQUIRED_DOCUMENTS,
    CLIENT_DYNAMIC_DOCUMENTS,
    CLIENT_DATA_VAULT,
    BUSINESS_PROFILES,
    USER_DOCUMENTS,
    EVENTS,
)
from vaultsync.db.indexes import create_indexes
from vaultsync.services.document_service import DocumentService

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)

COLLECTIONS = [
    USERS,
    REQUIRED_DOCUMENTS,
    CLIENT_DYNAMIC_DOCUMENTS,
    CLIENT_DATA_VAULT,
    BUSINESS_PROFILES,
    USER_DOCUMENTS,
    EVENTS,
]


async def main():
    """Main initialization"""
    logger.info("=" * 60)
    logger.info("  VaultSync Database Setup")
    logger.info("=" * 60 + "\n")

    await connect_to_mongo()

    try:
        await create_indexes()

        seeded = await DocumentService().seed_core_documents()
        logger.info(f"Core documents newly seeded: {seeded}")

        # ==================== VERIFICATION ====================
        db = get_database()
        for collection_name in COLLECTIONS:
            collection = db[collection_name]
            indexes = await collection.index_information()
            count = await collection.count_documents({})
            logger.info(f"\n  {collection_name} ({count} documents):")
            for idx_name in indexes.keys():
                if idx_name != "_id_":
                    logger.info(f"    {idx_name}")

        logger.info("\nDatabase initialization complete!")

    finally:
        await close_mongo_connection()

    logger.info("\n" + "=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
