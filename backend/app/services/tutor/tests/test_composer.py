from app.models.tutor import UserProfile
from app.prompts import get_prompt
from app.services.tutor.composer import (
    NO_CONVERSATION,
    NO_RELEVANT_HISTORY,
    compose_prompt,
    system_prompt,
)
from app.services.tutor.ranker import INSUFFICIENT_DATA
from conftest import FakeDatabase, add_turns

SCHEMA_FIELDS = [
    '"answer"',
    '"steps"',
    '"followup_questions"',
    '"confidence_score"',
    '"key_concepts"',
    '"is_final_answer"',
]


def test_question_appears_verbatim(ana_profile):
    question = "Why is {1/2} bigger than 1/3?"

    prompt = compose_prompt(ana_profile, [], INSUFFICIENT_DATA, question, hint_mode=True)

    assert question in prompt


def test_profile_details_are_embedded():
    profile = UserProfile(
        user_id="u1",
        username="Ravi",
        age=12,
        standard="Grade 7",
        favourite_subjects=["Science", "History", "Art"],
        learning_goals=["photosynthesis", "world war 2"],
        give_hints=False,
    )

    prompt = compose_prompt(profile, [], [], "What is a cell?", hint_mode=False)

    assert "You are an AI tutor for Ravi." in prompt
    assert "- AGE: 12" in prompt
    assert "- GRADE: Grade 7" in prompt
    assert "- FAVORITE SUBJECTS: Science, History, Art" in prompt
    assert "- LEARNING GOALS: photosynthesis, world war 2" in prompt


def test_hint_mode_selects_guided_instructions(ana_profile):
    hinted = compose_prompt(ana_profile, [], [], "What is a fraction?", hint_mode=True)
    direct = compose_prompt(ana_profile, [], [], "What is a fraction?", hint_mode=False)

    assert get_prompt("user", "tutor", "hint_mode") in hinted
    assert get_prompt("user", "tutor", "direct_mode") not in hinted
    assert get_prompt("user", "tutor", "direct_mode") in direct
    assert get_prompt("user", "tutor", "hint_mode") not in direct


def test_output_schema_is_spelled_out(ana_profile):
    prompt = compose_prompt(ana_profile, [], [], "What is a fraction?", hint_mode=True)

    for field in SCHEMA_FIELDS:
        assert field in prompt
    # Escaped template braces must render as literal JSON braces
    assert "{{" not in prompt


def test_conversation_is_rendered_oldest_first(ana_profile):
    db = FakeDatabase()
    add_turns(db, ana_profile.user_id, ["first question", "first answer", "second question"])
    newest_first = sorted(db.conversations, key=lambda t: t.created_at, reverse=True)

    prompt = compose_prompt(ana_profile, newest_first, [], "next?", hint_mode=True)

    first = prompt.index("user: first question")
    middle = prompt.index("assistant: first answer")
    last = prompt.index("user: second question")
    assert first < middle < last


def test_placeholders_when_there_is_no_context(ana_profile):
    prompt = compose_prompt(ana_profile, [], INSUFFICIENT_DATA, "What is a fraction?", hint_mode=True)

    assert NO_CONVERSATION in prompt
    assert NO_RELEVANT_HISTORY in prompt


def test_relevant_histories_are_listed_in_rank_order(ana_profile):
    prompt = compose_prompt(
        ana_profile,
        [],
        ["User interested in learning algebra", "User interested in dinosaurs"],
        "tell me about equations",
        hint_mode=False,
    )

    assert prompt.index("- User interested in learning algebra") < prompt.index(
        "- User interested in dinosaurs"
    )


def test_missing_profile_fields_render_as_not_specified():
    prompt = compose_prompt(UserProfile(user_id="u2"), [], [], "hi?", hint_mode=False)

    assert "- AGE: Not specified" in prompt
    assert "- FAVORITE SUBJECTS: Not specified" in prompt
    assert "- LEARNING GOALS: Not specified" in prompt


def test_composing_is_deterministic(ana_profile):
    args = (ana_profile, [], ["User interested in fractions"], "What is 1/2?", True)

    assert compose_prompt(*args) == compose_prompt(*args)


def test_system_prompt_requires_json():
    assert "JSON" in system_prompt()
