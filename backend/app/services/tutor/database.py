import logging
import uuid
from datetime import datetime
from typing import List, Optional, Sequence

import pymongo
from app.models.database import (
    ConversationTurnDocument,
    InterestHistoryDocument,
    SessionMemoryDocument,
)
from app.models.tutor import (
    ConversationTurn,
    InterestHistoryEntry,
    SessionMemory,
    UserProfile,
)
from motor.motor_asyncio import AsyncIOMotorClient

logger = logging.getLogger(__name__)

SESSION_MEMORY_WINDOW = 10


class DatabaseClient:
    def __init__(self, mongo_uri: str, db_name: str = "tutor"):
        self.client = AsyncIOMotorClient(mongo_uri)
        self.db = self.client[db_name]

    async def init_indexes(self):
        """Initialize database indexes."""

        # Profiles collection
        await self.db.profiles.create_index("user_id", unique=True)

        # Conversations collection
        await self.db.conversations.create_index(
            [("user_id", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)]
        )

        # Interest history collection
        await self.db.user_histories.create_index(
            [("user_id", pymongo.ASCENDING), ("created_at", pymongo.ASCENDING)]
        )

        # Session memory collection
        await self.db.session_memory.create_index(
            [
                ("user_id", pymongo.ASCENDING),
                ("current_topic", pymongo.ASCENDING),
                ("created_at", pymongo.DESCENDING),
            ]
        )

    # Profile methods
    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """Get user's profile."""

        doc = await self.db.profiles.find_one({"user_id": user_id})
        if not doc:
            return None

        return UserProfile(
            user_id=doc["user_id"],
            username=doc.get("username") or "",
            age=doc.get("age"),
            standard=doc.get("standard"),
            favourite_subjects=doc.get("favourite_subjects") or [],
            learning_goals=doc.get("learning_goals"),
            give_hints=bool(doc.get("give_hints", False)),
        )

    # Conversation methods
    async def get_recent_conversation_turns(
        self, user_id: str, limit: int = 5
    ) -> List[ConversationTurn]:
        """Get the user's latest conversation turns, newest first."""

        cursor = (
            self.db.conversations.find({"user_id": user_id})
            .sort([("created_at", pymongo.DESCENDING), ("_id", pymongo.DESCENDING)])
            .limit(limit)
        )

        turns = []
        async for doc in cursor:
            turns.append(
                ConversationTurn(
                    user_id=doc["user_id"],
                    role=doc["role"],
                    message=doc["message"],
                    metadata=doc.get("metadata"),
                    created_at=doc["created_at"],
                )
            )

        return turns

    async def insert_conversation_turns(self, turns: Sequence[ConversationTurn]):
        """Append conversation turns in the given order."""

        docs = [
            ConversationTurnDocument(
                user_id=turn.user_id,
                role=turn.role.value,
                message=turn.message,
                metadata=turn.metadata,
                created_at=turn.created_at,
            ).model_dump()
            for turn in turns
        ]
        if not docs:
            return

        try:
            await self.db.conversations.insert_many(docs, ordered=True)
        except Exception as e:
            logger.error(f"Error storing conversation turns: {str(e)}")
            raise

    # Interest history methods
    async def get_interest_history(self, user_id: str) -> List[InterestHistoryEntry]:
        """Get every interest history entry for the user, oldest first."""

        cursor = self.db.user_histories.find({"user_id": user_id}).sort(
            "created_at", pymongo.ASCENDING
        )

        entries = []
        async for doc in cursor:
            entries.append(
                InterestHistoryEntry(
                    user_id=doc["user_id"],
                    content=doc["content"],
                    created_at=doc["created_at"],
                )
            )

        return entries

    async def add_interest_history(
        self, user_id: str, content: str
    ) -> InterestHistoryEntry:
        """Append a new interest history entry."""

        entry = InterestHistoryEntry(user_id=user_id, content=content)
        try:
            await self.db.user_histories.insert_one(
                InterestHistoryDocument(**entry.model_dump()).model_dump()
            )
        except Exception as e:
            logger.error(f"Error storing interest history: {str(e)}")
            raise

        return entry

    # Session memory methods
    async def get_session_memory(self, user_id: str, topic: str) -> SessionMemory:
        """Get the latest session memory for a topic, or an empty one."""

        doc = await self.db.session_memory.find_one(
            {"user_id": user_id, "current_topic": topic},
            sort=[("created_at", pymongo.DESCENDING)],
        )
        if not doc:
            return SessionMemory(user_id=user_id, topic=topic)

        return SessionMemory(
            user_id=user_id,
            topic=doc.get("current_topic") or topic,
            session_id=doc.get("session_id"),
            messages=doc.get("messages") or [],
            step_count=doc.get("step_count") or 0,
        )

    async def save_session_memory(
        self, user_id: str, user_message: str, ai_response: str, topic: str
    ) -> SessionMemory:
        """Append one exchange to the topic's session memory."""

        existing = await self.get_session_memory(user_id, topic)
        now = datetime.now()

        if existing.session_id is None:
            session_id = str(uuid.uuid4())
            step_count = 0
        else:
            session_id = existing.session_id
            step_count = existing.step_count + 1

        messages = existing.messages + [
            {"role": "user", "content": user_message},
            {"role": "assistant", "content": ai_response},
        ]
        messages = messages[-SESSION_MEMORY_WINDOW:]

        doc = SessionMemoryDocument(
            user_id=user_id,
            session_id=session_id,
            current_topic=topic,
            messages=messages,
            step_count=step_count,
            created_at=now,
            updated_at=now,
        ).model_dump()
        created_at = doc.pop("created_at")

        await self.db.session_memory.update_one(
            {"session_id": session_id},
            {"$set": doc, "$setOnInsert": {"created_at": created_at}},
            upsert=True,
        )

        return SessionMemory(
            user_id=user_id,
            topic=topic,
            session_id=session_id,
            messages=messages,
            step_count=step_count,
        )

    async def close(self):
        self.client.close()
