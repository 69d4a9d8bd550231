from typing import List, Optional, Sequence, Union

from app.models.tutor import ConversationTurn, UserProfile
from app.prompts import get_prompt
from app.services.tutor.ranker import INSUFFICIENT_DATA, InsufficientData

NOT_SPECIFIED = "Not specified"
NO_CONVERSATION = "No prior conversation found."
NO_RELEVANT_HISTORY = "No relevant history found."


def system_prompt() -> str:
    return get_prompt("system", "tutor", "personalized_response")


def format_conversation(turns: Sequence[ConversationTurn]) -> str:
    """Render turns oldest first. Expects them newest first, as retrieved."""
    if not turns:
        return NO_CONVERSATION
    return "\n".join(
        f"{turn.role.value}: {turn.message}" for turn in reversed(list(turns))
    )


def format_relevant_histories(
    relevant_histories: Union[List[str], InsufficientData, None],
) -> str:
    if relevant_histories is INSUFFICIENT_DATA or not relevant_histories:
        return NO_RELEVANT_HISTORY
    return "\n".join(f"- {entry}" for entry in relevant_histories)


def format_learning_goals(goals: Union[str, List[str], None]) -> str:
    if not goals:
        return NOT_SPECIFIED
    if isinstance(goals, str):
        return goals
    return ", ".join(goals)


def _or_not_specified(value: Optional[object]) -> str:
    if value is None or value == "":
        return NOT_SPECIFIED
    return str(value)


def compose_prompt(
    profile: UserProfile,
    conversation: Sequence[ConversationTurn],
    relevant_histories: Union[List[str], InsufficientData, None],
    question: str,
    hint_mode: bool,
) -> str:
    """Build the personalized tutoring prompt for one question.

    Args:
        profile: The student's profile.
        conversation: Recent turns, newest first (the order they are fetched in).
        relevant_histories: Interest-history snippets ranked for this question,
            or the INSUFFICIENT_DATA sentinel.
        question: The student's question, embedded verbatim.
        hint_mode: Guide with questions instead of answering directly.

    Returns:
        The user prompt, including the JSON schema the reply must follow.
    """
    task_instructions = get_prompt(
        "user", "tutor", "hint_mode" if hint_mode else "direct_mode"
    )

    return get_prompt("user", "tutor", "personalized_response").format(
        username=profile.username or "a student",
        age=_or_not_specified(profile.age),
        standard=_or_not_specified(profile.standard),
        favourite_subjects=", ".join(profile.favourite_subjects) or NOT_SPECIFIED,
        learning_goals=format_learning_goals(profile.learning_goals),
        conversation_context=format_conversation(conversation),
        relevant_histories=format_relevant_histories(relevant_histories),
        question=question,
        task_instructions=task_instructions,
    )
