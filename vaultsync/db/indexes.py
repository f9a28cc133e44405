"""
vaultsync/db/indexes.py

Purpose: Database index management

- Creates unique and lookup indexes
- Unique constraints back the idempotent upserts used across the app
"""

from pymongo import ASCENDING, DESCENDING

from vaultsync.db.mongo import (
    get_users_collection,
    get_required_documents_collection,
    get_client_dynamic_documents_collection,
    get_client_data_vault_collection,
    get_business_profiles_collection,
    get_user_documents_collection,
    get_events_collection,
)
from vaultsync.core.logging import get_logger

logger = get_logger(__name__)


async def create_indexes():
    """
    Creates all necessary database indexes.
    This function is idempotent - safe to run multiple times.
    """
    try:
        users = get_users_collection()
        required_documents = get_required_documents_collection()
        dynamic_documents = get_client_dynamic_documents_collection()
        clients = get_client_data_vault_collection()
        profiles = get_business_profiles_collection()
        uploads = get_user_documents_collection()
        events = get_events_collection()

        logger.info("Creating database indexes...")

        # ==============================================
        # USERS
        # ==============================================
        await users.create_index("user_id", unique=True, name="user_id_unique")
        await users.create_index("email", unique=True, name="email_unique")
        await users.create_index("role", name="role_idx")
        await users.create_index("reset_token_hash", sparse=True, name="reset_token_idx")

        # ==============================================
        # REQUIRED DOCUMENTS
        # ==============================================
        await required_documents.create_index("document_id", unique=True, name="document_id_unique")
        await required_documents.create_index("code", unique=True, name="code_unique")
        await required_documents.create_index(
            [("crm_tag", ASCENDING), ("is_core", ASCENDING)],
            name="crm_tag_idx"
        )

        # ==============================================
        # CLIENT DYNAMIC DOCUMENTS
        # ==============================================
        # Backs the (user_id, document_id) upsert in reconciliation
        await dynamic_documents.create_index(
            [("user_id", ASCENDING), ("document_id", ASCENDING)],
            unique=True,
            name="user_document_unique"
        )
        await dynamic_documents.create_index(
            [("user_id", ASCENDING), ("is_active", ASCENDING)],
            name="user_active_idx"
        )

        # ==============================================
        # CLIENT DATA VAULT
        # ==============================================
        await clients.create_index("user_id", unique=True, name="client_user_unique")
        await clients.create_index("crm_contact_id", sparse=True, name="crm_contact_idx")
        await clients.create_index("client_email", name="client_email_idx")
        await clients.create_index(
            [("advisor_id", ASCENDING), ("created_at", DESCENDING)],
            name="advisor_clients_idx"
        )

        # ==============================================
        # BUSINESS PROFILES / UPLOADS / EVENTS
        # ==============================================
        await profiles.create_index("profile_id", unique=True, name="profile_id_unique")
        await profiles.create_index("user_id", unique=True, name="profile_user_unique")

        await uploads.create_index(
            [("user_id", ASCENDING), ("doc_code", ASCENDING)],
            name="user_doc_code_idx"
        )

        await events.create_index(
            [("profile_id", ASCENDING), ("created_at", DESCENDING)],
            name="profile_events_idx"
        )
        await events.create_index("type", name="event_type_idx")
        await events.create_index(
            [("user_id", ASCENDING), ("type", ASCENDING), ("created_at", DESCENDING)],
            name="user_event_type_idx"
        )

        logger.info("All database indexes created successfully")

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise


if __name__ == "__main__":
    import asyncio
    from vaultsync.db.mongo import connect_to_mongo, close_mongo_connection

    async def main():
        await connect_to_mongo()
        await create_indexes()
        await close_mongo_connection()

    asyncio.run(main())
