"""
vaultsync/db/mongo.py

Purpose: MongoDB connection setup

- Initializes Motor client with connection pooling
- Collections: users, required_documents, client_dynamic_documents,
  client_data_vault, business_profiles, user_documents, events
- Health checks and retry logic
- Proper connection lifecycle management
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from typing import Optional
import asyncio
from vaultsync.core.config import settings
from vaultsync.core.logging import get_logger

logger = get_logger(__name__)

USERS = "users"
REQUIRED_DOCUMENTS = "required_documents"
CLIENT_DYNAMIC_DOCUMENTS = "client_dynamic_documents"
CLIENT_DATA_VAULT = "client_data_vault"
BUSINESS_PROFILES = "business_profiles"
USER_DOCUMENTS = "user_documents"
EVENTS = "events"

# Global MongoDB client
_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo():
    """
    Establishes connection to MongoDB with retry logic.
    Called during application startup.
    """
    global _client, _database

    if _client is not None:
        logger.warning("MongoDB client already initialized")
        return

    max_retries = 3
    retry_delay = 2

    for attempt in range(1, max_retries + 1):
        try:
            logger.info(
                f"Attempting to connect to MongoDB (attempt {attempt}/{max_retries})"
            )

            _client = AsyncIOMotorClient(
                settings.MONGODB_URL,
                maxPoolSize=50,
                minPoolSize=5,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000,
                retryWrites=True,
                retryReads=True,
                tz_aware=True,
            )

            _database = _client[settings.MONGODB_DB_NAME]

            # Verify connection
            await _client.admin.command("ping")

            logger.info(f"Connected to MongoDB: {settings.MONGODB_DB_NAME}")
            return

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(
                f"Failed to connect to MongoDB (attempt {attempt}/{max_retries}): {e}"
            )
            _client = None
            _database = None

            if attempt < max_retries:
                logger.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2
            else:
                logger.critical("Failed to connect to MongoDB after all retries")
                raise ConnectionError("Could not establish MongoDB connection") from e


async def close_mongo_connection():
    """
    Closes the MongoDB connection.
    Called during application shutdown.
    """
    global _client, _database

    if _client:
        logger.info("Closing MongoDB connection")
        _client.close()
        _client = None
        _database = None


async def check_database_health() -> bool:
    """
    Checks if the database connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        if _client is None:
            logger.error("MongoDB client not initialized")
            return False

        await _client.admin.command("ping")
        return True

    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        return False


def get_database() -> AsyncIOMotorDatabase:
    """
    Returns the MongoDB database instance.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _database is None:
        raise RuntimeError(
            "Database not initialized. Call connect_to_mongo() during startup."
        )
    return _database


def get_collection(name: str) -> AsyncIOMotorCollection:
    return get_database()[name]


def get_users_collection() -> AsyncIOMotorCollection:
    """
    Returns the users collection.

    Fields: user_id, email, first_name, last_name, password_hash, role,
    metadata, reset_token_hash, reset_token_expires_at, created_at, updated_at
    """
    return get_collection(USERS)


def get_required_documents_collection() -> AsyncIOMotorCollection:
    """Document type catalog (core and dynamic definitions)."""
    return get_collection(REQUIRED_DOCUMENTS)


def get_client_dynamic_documents_collection() -> AsyncIOMotorCollection:
    """Per-user links to dynamic requirements, with an is_active flag."""
    return get_collection(CLIENT_DYNAMIC_DOCUMENTS)


def get_client_data_vault_collection() -> AsyncIOMotorCollection:
    """
    Returns the client record collection.

    Holds the CRM contact linkage (crm_contact_id) plus onboarding and
    contract status for each client user.
    """
    return get_collection(CLIENT_DATA_VAULT)


def get_business_profiles_collection() -> AsyncIOMotorCollection:
    return get_collection(BUSINESS_PROFILES)


def get_user_documents_collection() -> AsyncIOMotorCollection:
    return get_collection(USER_DOCUMENTS)


def get_events_collection() -> AsyncIOMotorCollection:
    return get_collection(EVENTS)
