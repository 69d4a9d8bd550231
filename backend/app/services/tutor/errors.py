"""Failures raised inside the tutoring pipeline.

Every error carries a ``user_message`` that the orchestrator turns into a
fallback ``TutorResponse``; none of them reach callers of ``get_response``.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from app.models.tutor import TutorResponse


class TutorError(Exception):
    user_message = "Sorry, something went wrong on my side. Please try again."

    def __init__(self, detail: str = "", user_message: Optional[str] = None):
        super().__init__(detail or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class InvalidInput(TutorError):
    user_message = "Please type a question so I can help you."


class HistoryUnavailable(TutorError):
    user_message = (
        "Sorry, I couldn't retrieve your previous messages right now. "
        "Please try again in a moment."
    )


class ProfileUnavailable(TutorError):
    user_message = (
        "Sorry, I couldn't load your profile. "
        "Please make sure your profile is set up and try again."
    )


class EmbeddingUnavailable(TutorError):
    user_message = (
        "Sorry, I couldn't look through your learning history right now. "
        "Please try again in a moment."
    )


class ModelUnavailable(TutorError):
    user_message = (
        "Sorry, I'm having trouble reaching the tutor right now. "
        "Please try again in a moment."
    )


class MalformedModelOutput(TutorError):
    user_message = (
        "Sorry, I couldn't put together a proper answer this time. "
        "Could you ask your question again?"
    )


class RequestTimedOut(TutorError):
    user_message = (
        "Sorry, that took longer than expected. Please try asking again."
    )


class OffTopicQuery(TutorError):
    """Not a failure: the question was classified as off-topic."""

    user_message = (
        "I'm here to help you learn! Let's keep our conversation about your "
        "studies. What would you like to explore today?"
    )

    def __init__(self, response: "TutorResponse", detail: str = ""):
        super().__init__(detail or "question classified as off-topic")
        self.response = response
