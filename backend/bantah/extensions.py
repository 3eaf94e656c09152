import logging

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import ConfigurationError

logger = logging.getLogger(__name__)

_client = None
_db = None


def init_mongo(app):
    global _client, _db
    mongo_uri = app.config["MONGO_URI"]
    _client = MongoClient(mongo_uri)

    # get_default_database() extracts DB name from URI (e.g., /bantah?)
    # If that fails, use a fallback
    try:
        _db = _client.get_default_database()
    except ConfigurationError:
        _db = None
    if _db is None:
        _db = _client["bantah"]

    ensure_indexes(_db)
    logger.info("[MongoDB] Connected to database: %s", _db.name)


def ensure_indexes(database):
    """Create the unique and lookup indexes the services rely on."""
    database.users.create_index("email", unique=True)
    database.users.create_index("username", unique=True)
    database.users.create_index("referral_code", unique=True, sparse=True)
    database.wallets.create_index("user_id", unique=True)
    database.wallet_transactions.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database.deposits.create_index("reference", unique=True)
    database.event_participants.create_index(
        [("event_id", ASCENDING), ("user_id", ASCENDING)], unique=True
    )
    database.event_pools.create_index("event_id", unique=True)
    database.followers.create_index(
        [("follower_id", ASCENDING), ("following_id", ASCENDING)], unique=True
    )
    database.user_stats.create_index("user_id", unique=True)
    database.messages.create_index([("chat_id", ASCENDING), ("created_at", ASCENDING)])
    database.notifications.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])


def get_db():
    """Get the database instance. Must be called after init_mongo."""
    return _db


# Proxy that always resolves to the current db
class _DBProxy:
    def __getattr__(self, name):
        if _db is None:
            raise RuntimeError("Database not initialized. Call init_mongo first.")
        return getattr(_db, name)

    def __getitem__(self, name):
        if _db is None:
            raise RuntimeError("Database not initialized. Call init_mongo first.")
        return _db[name]

    def __bool__(self):
        return _db is not None


db = _DBProxy()
