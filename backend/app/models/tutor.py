from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool, StrictStr


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class UserProfile(BaseModel):
    """Profile captured at onboarding and edited only by the user."""

    user_id: str
    username: str = ""
    age: Optional[int] = None
    standard: Optional[str] = Field(default=None, description="Grade or standard")
    favourite_subjects: List[str] = Field(default_factory=list)
    learning_goals: Union[str, List[str], None] = None
    give_hints: bool = Field(
        default=False, description="Ask guiding questions before answering"
    )


class TutorResponse(BaseModel):
    """Validated structured reply produced for one question."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    answer: StrictStr = Field(
        min_length=1,
        validation_alias=AliasChoices("answer", "mainResponse", "main_response"),
        description="The main educational content",
    )
    steps: List[StrictStr] = Field(
        default_factory=list, description="Reasoning steps, possibly empty"
    )
    followup_questions: List[StrictStr] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "followup_questions", "followUpQuestions", "follow_up_questions"
        ),
        description="Questions that keep the student thinking",
    )
    confidence_score: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        strict=True,
        validation_alias=AliasChoices("confidence_score", "confidence"),
    )
    key_concepts: List[StrictStr] = Field(
        default_factory=list,
        validation_alias=AliasChoices("key_concepts", "relatedTopics", "related_topics"),
        description="Key concepts or related topics",
    )
    is_final_answer: StrictBool = Field(
        default=True, description="Whether the tutor considers the topic resolved"
    )
    # Set on every fallback; never serialized.
    is_fallback: bool = Field(default=False, exclude=True)

    @classmethod
    def fallback(cls, message: str) -> "TutorResponse":
        return cls(
            answer=message,
            steps=[],
            followup_questions=[],
            confidence_score=0.0,
            key_concepts=[],
            is_final_answer=True,
            is_fallback=True,
        )


class ConversationTurn(BaseModel):
    user_id: str
    role: Role
    message: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def exchange(
        cls, user_id: str, question: str, response: TutorResponse
    ) -> Tuple["ConversationTurn", "ConversationTurn"]:
        """Build the user/assistant pair written for a single exchange."""
        asked_at = datetime.now()
        return (
            cls(user_id=user_id, role=Role.USER, message=question, created_at=asked_at),
            cls(
                user_id=user_id,
                role=Role.ASSISTANT,
                message=response.answer,
                metadata=response.model_dump(),
                # Keep the assistant turn strictly after the question
                created_at=asked_at + timedelta(microseconds=1),
            ),
        )


class InterestHistoryEntry(BaseModel):
    user_id: str
    content: str
    created_at: datetime = Field(default_factory=datetime.now)


class TopicClassification(BaseModel):
    is_educational: bool = Field(
        description="Whether the question is about learning or schoolwork"
    )
    reason: str = Field(description="Short justification for the classification")


class GuidedState(str, Enum):
    ASKING = "asking"
    WAITING_FOR_MODEL = "waiting_for_model"
    GUIDING = "guiding"
    DONE = "done"


class GuidedStep(BaseModel):
    step: int
    question: str
    response: TutorResponse


class GuidedSession(BaseModel):
    final_answer: str
    steps: List[GuidedStep]
    reached_step_cap: bool = False


class SessionMemory(BaseModel):
    user_id: str
    topic: str
    session_id: Optional[str] = None
    messages: List[Dict[str, str]] = Field(default_factory=list)
    step_count: int = 0
