import asyncio
import logging
from typing import List, Optional, Sequence, Tuple, Union

from app.models.tutor import (
    ConversationTurn,
    InterestHistoryEntry,
    TutorResponse,
    UserProfile,
)
from app.services.tutor.composer import compose_prompt, system_prompt
from app.services.tutor.database import DatabaseClient
from app.services.tutor.embeddings import EmbeddingService
from app.services.tutor.errors import (
    HistoryUnavailable,
    InvalidInput,
    OffTopicQuery,
    ProfileUnavailable,
    RequestTimedOut,
    TutorError,
)
from app.services.tutor.llm import LLMService
from app.services.tutor.ranker import INSUFFICIENT_DATA, InsufficientData, most_relevant
from app.services.tutor.topic_guard import TopicGuard
from app.services.tutor.validator import validate_response

logger = logging.getLogger(__name__)


class TutorOrchestrator:
    """Produces one personalized tutoring response per question.

    Never raises: every failure along the way becomes a fallback
    TutorResponse with is_final_answer set, so the caller always has
    something to render.
    """

    def __init__(
        self,
        db: DatabaseClient,
        embeddings: EmbeddingService,
        llm: LLMService,
        topic_guard: Optional[TopicGuard] = None,
        history_limit: int = 5,
        relevant_history_count: int = 3,
        request_timeout: float = 120.0,
    ):
        self.db = db
        self.embeddings = embeddings
        self.llm = llm
        self.topic_guard = topic_guard
        self.history_limit = history_limit
        self.relevant_history_count = relevant_history_count
        self.request_timeout = request_timeout

    async def get_response(self, user_id: str, question: str) -> TutorResponse:
        """Answer a question for a user."""
        try:
            return await asyncio.wait_for(
                self._respond(user_id, question), timeout=self.request_timeout
            )
        except OffTopicQuery as e:
            return e.response
        except asyncio.TimeoutError:
            logger.error(
                f"Response for user {user_id} exceeded {self.request_timeout}s deadline"
            )
            return TutorResponse.fallback(RequestTimedOut.user_message)
        except TutorError as e:
            logger.warning(
                f"Returning fallback for user {user_id}: "
                f"{type(e).__name__}: {str(e)}"
            )
            return TutorResponse.fallback(e.user_message)
        except Exception as e:
            logger.exception(f"Unexpected error answering for user {user_id}: {str(e)}")
            return TutorResponse.fallback(TutorError.user_message)

    async def _respond(self, user_id: str, question: str) -> TutorResponse:
        question = (question or "").strip()
        if not question:
            raise InvalidInput("question is empty")

        conversation, profile, interests = await self._fetch_context(user_id)

        if self.topic_guard:
            await self.topic_guard.ensure_on_topic(question, profile)

        relevant_histories = await self._rank_interest_history(interests, question)

        prompt = compose_prompt(
            profile=profile,
            conversation=conversation,
            relevant_histories=relevant_histories,
            question=question,
            hint_mode=profile.give_hints,
        )

        raw_output = await self.llm.complete(system_prompt(), prompt, response_format="json")
        response = validate_response(raw_output)

        await self._persist_exchange(user_id, question, response)
        return response

    async def _fetch_context(
        self, user_id: str
    ) -> Tuple[List[ConversationTurn], UserProfile, List[InterestHistoryEntry]]:
        """Fetch conversation history, profile and interest history together."""
        conversation, profile, interests = await asyncio.gather(
            self.db.get_recent_conversation_turns(user_id, limit=self.history_limit),
            self.db.get_profile(user_id),
            self.db.get_interest_history(user_id),
            return_exceptions=True,
        )

        if isinstance(conversation, Exception):
            logger.error(f"Error fetching conversation history: {str(conversation)}")
            raise HistoryUnavailable(
                f"conversation history unavailable for {user_id}"
            ) from conversation

        if isinstance(profile, Exception):
            logger.error(f"Error fetching user profile: {str(profile)}")
            raise ProfileUnavailable(f"profile unavailable for {user_id}") from profile
        if profile is None:
            raise ProfileUnavailable(f"no profile found for {user_id}")

        if isinstance(interests, Exception):
            logger.error(f"Error fetching interest history: {str(interests)}")
            raise HistoryUnavailable(
                f"interest history unavailable for {user_id}"
            ) from interests

        logger.info(
            f"Fetched context for {user_id}: {len(conversation)} turns, "
            f"{len(interests)} interest entries"
        )
        return conversation, profile, interests

    async def _rank_interest_history(
        self, entries: Sequence[InterestHistoryEntry], question: str
    ) -> Union[List[str], InsufficientData]:
        texts = [entry.content for entry in entries if entry.content.strip()]
        if not texts:
            return INSUFFICIENT_DATA

        candidate_vectors, query_vector = await asyncio.gather(
            self.embeddings.encode_many(texts),
            self.embeddings.encode(question),
        )

        relevant = most_relevant(
            query_vector, candidate_vectors, texts, k=self.relevant_history_count
        )
        logger.info(f"Most relevant interest history: {relevant}")
        return relevant

    async def _persist_exchange(
        self, user_id: str, question: str, response: TutorResponse
    ) -> None:
        """Store the question and answer; failures here don't fail the request."""
        try:
            await self.db.insert_conversation_turns(
                ConversationTurn.exchange(user_id, question, response)
            )
        except Exception as e:
            logger.error(f"Error persisting exchange for {user_id}: {str(e)}")
