import logging
import os
from typing import Any, Optional

from pymongo import MongoClient
from pymongo.errors import ServerSelectionTimeoutError
from pymongo.server_api import ServerApi

logger = logging.getLogger(__name__)

DEFAULT_DB = "quizmaster"

_client: Optional[MongoClient] = None


def _env_flag(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() in ("1", "true", "yes")


def connect(timeout_ms: int = 5000) -> Any:
    """Return the quiz database, opening and pinging the client on first use."""
    global _client
    uri = os.getenv("MONGO_URI")
    db_name = os.getenv("MONGO_DB") or DEFAULT_DB

    if not uri:
        raise RuntimeError("MONGO_URI environment variable is not set")

    if _client is None:
        options: dict[str, Any] = {}
        if _env_flag("MONGO_TLS_ALLOW_INVALID"):
            options.update(tls=True, tlsAllowInvalidCertificates=True)
        client = MongoClient(
            uri,
            serverSelectionTimeoutMS=timeout_ms,
            server_api=ServerApi('1'),
            **options,
        )
        try:
            client.admin.command("ping")
        except ServerSelectionTimeoutError as exc:
            client.close()
            raise RuntimeError("Unable to connect to MongoDB") from exc
        _client = client
        logger.info("Connected to MongoDB database %s", db_name)

    return _client[db_name]


def close() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
