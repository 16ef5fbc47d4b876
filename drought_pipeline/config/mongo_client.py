import logging
from typing import Optional
from pymongo import MongoClient, ReadPreference
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from drought_pipeline.config.settings import Settings, settings as default_settings

# Configure logging
logger = logging.getLogger(__name__)

class DroughtMongoClient:
    """
    Wrapper for the MongoDB connection.
    Raw observations (collector output) and reconstructed drought series
    live in separate databases.
    """

    def __init__(self, config: Optional[Settings] = None):
        config = config or default_settings
        self._uri = config.mongo_uri
        self._raw_db_name = config.raw_db_name
        self._analytics_db_name = config.analytics_db_name
        self._client: Optional[MongoClient] = None

    def connect(self) -> None:
        """
        Establishes the MongoDB connection and verifies it with a ping.
        """
        if not self._uri:
            raise ValueError("MONGO_URI environment variable is not set.")

        # Mask credentials before logging
        masked_uri = self._uri.split("@")[1] if "@" in self._uri else self._uri
        logger.info(f"🔌 Connecting to MongoDB: {masked_uri}")

        try:
            self._client = MongoClient(
                self._uri,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=5000
            )
            self._client.admin.command("ping")
            logger.info(f"✅ Connected. Raw DB: {self._raw_db_name} | Series DB: {self._analytics_db_name}")

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.critical(f"❌ Failed to connect to MongoDB: {e}")
            raise

    def get_raw_db(self) -> Database:
        """
        Handle for collected raw observations.
        Reads prefer secondaries; the collector writes through the primary anyway.
        """
        if not self._client:
            self.connect()

        return self._client.get_database(
            self._raw_db_name,
            read_preference=ReadPreference.SECONDARY_PREFERRED
        )

    def get_analytics_db(self) -> Database:
        """Handle for reconstructed series (write target)."""
        if not self._client:
            self.connect()

        return self._client.get_database(self._analytics_db_name)

    def start_session(self) -> ClientSession:
        if not self._client:
            self.connect()
        return self._client.start_session()

    def close(self):
        """Closes the connection."""
        if self._client:
            self._client.close()
            self._client = None
            logger.info("MongoDB connection closed.")

# Singleton instance for easy import across modules
mongo_client = DroughtMongoClient()
