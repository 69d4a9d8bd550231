import hashlib
import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class EmbeddingRecord(BaseModel):
    """Cached embedding for one piece of text under one model."""

    content_hash: str  # sha256 of the text
    model: str
    text: str
    embedding: List[float]
    timestamp: datetime
    duration_ms: int = 0


class EmbeddingCache:
    """Persistent cache of sentence embeddings keyed by (text, model)."""

    def __init__(self, mongodb_uri: str, database: str = "embedding_cache"):
        self.client = AsyncIOMotorClient(mongodb_uri)
        self.db = self.client[database]

    async def init_indexes(self):
        """Create the lookup index for (content_hash, model)."""
        await self.db.embeddings.create_index(
            [("content_hash", 1), ("model", 1)], unique=True
        )
        await self.db.embeddings.create_index([("timestamp", -1)])

    @staticmethod
    def _content_hash(text: str) -> str:
        return hashlib.sha256(text.encode()).hexdigest()

    async def get_cached_embedding(
        self, text: str, model: str
    ) -> Optional[List[float]]:
        """Get cached embedding for this text if it exists."""
        try:
            content_hash = self._content_hash(text)
            record = await self.db.embeddings.find_one(
                {"content_hash": content_hash, "model": model}
            )

            if record:
                logger.debug(f"Cache hit for embedding hash: {content_hash[:8]}")
                return record["embedding"]

            logger.debug(f"Cache miss for embedding hash: {content_hash[:8]}")
            return None

        except Exception as e:
            logger.error(f"Error retrieving embedding from cache: {str(e)}")
            return None

    async def store_embedding(
        self,
        text: str,
        model: str,
        embedding: List[float],
        duration_ms: int = 0,
    ) -> None:
        """Store embedding result."""
        try:
            record = EmbeddingRecord(
                content_hash=self._content_hash(text),
                model=model,
                text=text,
                embedding=embedding,
                timestamp=datetime.now(),
                duration_ms=duration_ms,
            )

            # Upsert so concurrent writers of the same text don't collide
            await self.db.embeddings.update_one(
                {"content_hash": record.content_hash, "model": model},
                {"$set": record.model_dump()},
                upsert=True,
            )

            logger.debug(
                f"Stored embedding {record.content_hash[:8]} - "
                f"Duration: {duration_ms}ms"
            )

        except Exception as e:
            logger.error(f"Error storing embedding: {str(e)}")
            raise
