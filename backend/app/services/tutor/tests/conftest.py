import json
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest
from app.models.tutor import (
    ConversationTurn,
    InterestHistoryEntry,
    Role,
    SessionMemory,
    UserProfile,
)
from app.services.tutor.embeddings import EmbeddingModelProvider, EmbeddingService
from app.services.tutor.llm import LLMService

# One dimension per topic; a text's vector counts the topic keywords it mentions
TOPIC_KEYWORDS = {
    "algebra": ["algebra", "equation", "variable"],
    "dinosaurs": ["dinosaur", "fossil", "jurassic"],
    "planets": ["planet", "orbit", "solar"],
    "fractions": ["fraction", "numerator", "denominator"],
}


class KeywordModel:
    """Stands in for a SentenceTransformer with a tiny topic-keyword space."""

    def __init__(self):
        self.encoded: List[str] = []

    def encode(self, text, normalize_embeddings=True, convert_to_numpy=True):
        self.encoded.append(text)
        lowered = text.lower()
        vector = np.array(
            [
                float(sum(lowered.count(word) for word in words))
                for words in TOPIC_KEYWORDS.values()
            ]
        )
        norm = np.linalg.norm(vector)
        if normalize_embeddings and norm > 0:
            vector = vector / norm
        return vector


class FakeDatabase:
    """In-memory stand-in for DatabaseClient."""

    def __init__(
        self,
        profiles: Optional[List[UserProfile]] = None,
        interests: Optional[List[InterestHistoryEntry]] = None,
    ):
        self.profiles: Dict[str, UserProfile] = {p.user_id: p for p in profiles or []}
        self.conversations: List[ConversationTurn] = []
        self.interests: List[InterestHistoryEntry] = list(interests or [])
        self.session_memory: Dict[tuple, SessionMemory] = {}

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return self.profiles.get(user_id)

    async def get_recent_conversation_turns(
        self, user_id: str, limit: int = 5
    ) -> List[ConversationTurn]:
        turns = [t for t in self.conversations if t.user_id == user_id]
        turns.sort(key=lambda t: t.created_at, reverse=True)
        return turns[:limit]

    async def insert_conversation_turns(self, turns):
        self.conversations.extend(turns)

    async def get_interest_history(self, user_id: str) -> List[InterestHistoryEntry]:
        return [e for e in self.interests if e.user_id == user_id]

    async def add_interest_history(self, user_id: str, content: str):
        entry = InterestHistoryEntry(user_id=user_id, content=content)
        self.interests.append(entry)
        return entry

    async def save_session_memory(
        self, user_id: str, user_message: str, ai_response: str, topic: str
    ) -> SessionMemory:
        key = (user_id, topic)
        memory = self.session_memory.get(key)
        if memory is None:
            memory = SessionMemory(user_id=user_id, topic=topic, session_id="session-1")
        else:
            memory = memory.model_copy(update={"step_count": memory.step_count + 1})
        memory.messages = (
            memory.messages
            + [
                {"role": "user", "content": user_message},
                {"role": "assistant", "content": ai_response},
            ]
        )[-10:]
        self.session_memory[key] = memory
        return memory


def add_turns(db: FakeDatabase, user_id: str, messages: List[str]) -> None:
    """Append alternating user/assistant turns, oldest first."""
    start = datetime(2024, 1, 1, 9, 0, 0)
    for i, message in enumerate(messages):
        db.conversations.append(
            ConversationTurn(
                user_id=user_id,
                role=Role.USER if i % 2 == 0 else Role.ASSISTANT,
                message=message,
                created_at=start + timedelta(minutes=i),
            )
        )


def tutor_json(**overrides) -> str:
    payload = {
        "answer": "A fraction is a part of a whole, like one slice of a pizza.",
        "steps": ["Think of a pizza cut into equal slices."],
        "followup_questions": ["If a pizza has 4 slices and you eat 1, what fraction did you eat?"],
        "confidence_score": 0.9,
        "key_concepts": ["numerator", "denominator"],
        "is_final_answer": False,
    }
    payload.update(overrides)
    return json.dumps(payload)


@pytest.fixture
def ana_profile() -> UserProfile:
    return UserProfile(
        user_id="user-ana",
        username="Ana",
        age=10,
        standard="Grade 5",
        favourite_subjects=["Math"],
        learning_goals="fractions",
        give_hints=True,
    )


@pytest.fixture
def keyword_model() -> KeywordModel:
    return KeywordModel()


@pytest.fixture
def embedding_provider(keyword_model) -> EmbeddingModelProvider:
    return EmbeddingModelProvider("keyword-test-model", loader=lambda name: keyword_model)


@pytest.fixture
def embedding_service(embedding_provider) -> EmbeddingService:
    return EmbeddingService(embedding_provider, max_concurrency=4)


@pytest.fixture
def llm() -> MagicMock:
    service = MagicMock(spec=LLMService)
    service.complete = AsyncMock(return_value=tutor_json())
    service.classify = AsyncMock()
    return service
