import logging
from typing import List

from app.models.tutor import TopicClassification, TutorResponse, UserProfile
from app.prompts import get_prompt
from app.services.tutor.errors import OffTopicQuery, TutorError
from app.services.tutor.llm import LLMService

logger = logging.getLogger(__name__)


class TopicGuard:
    """Short-circuits questions that are not about learning.

    Runs a cheap classification call so the main completion is skipped for
    off-topic messages. If the classifier itself fails the question is let
    through.
    """

    def __init__(self, llm_service: LLMService):
        self.llm = llm_service

    async def is_educational(self, question: str, profile: UserProfile) -> bool:
        messages = [
            {"role": "system", "content": get_prompt("system", "tutor", "topic_classifier")},
            {
                "role": "user",
                "content": get_prompt("user", "tutor", "topic_classifier").format(
                    age=profile.age if profile.age is not None else "Not specified",
                    standard=profile.standard or "Not specified",
                    favourite_subjects=", ".join(profile.favourite_subjects)
                    or "Not specified",
                    question=question,
                ),
            },
        ]

        try:
            result = await self.llm.classify(messages, TopicClassification)
        except TutorError as e:
            logger.warning(f"Topic classification failed, allowing question: {str(e)}")
            return True

        if not result.is_educational:
            logger.info(f"Question classified as off-topic: {result.reason}")
        return result.is_educational

    async def ensure_on_topic(self, question: str, profile: UserProfile) -> None:
        """Raise OffTopicQuery carrying a redirect response for off-topic input."""
        if not await self.is_educational(question, profile):
            raise OffTopicQuery(self.redirect_response(profile))

    @staticmethod
    def redirect_response(profile: UserProfile) -> TutorResponse:
        suggestions: List[str] = [
            f"Would you like to learn something new about {subject}?"
            for subject in profile.favourite_subjects[:3]
        ]
        return TutorResponse(
            answer=OffTopicQuery.user_message,
            steps=[],
            followup_questions=suggestions,
            confidence_score=0.0,
            key_concepts=[],
            is_final_answer=True,
        )
