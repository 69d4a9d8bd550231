import logging
from typing import List, Optional

from app.models.tutor import GuidedSession, GuidedState, GuidedStep, TutorResponse
from app.services.tutor.database import DatabaseClient
from app.services.tutor.orchestrator import TutorOrchestrator

logger = logging.getLogger(__name__)

# is_final_answer comes from the model and can't be trusted to ever be set,
# so a session never runs more steps than this.
MAX_GUIDED_STEPS = 5

MAX_TOPIC_LENGTH = 200


class GuidedSessionController:
    """Drives a Socratic session by feeding follow-up questions back in.

    Each step is one call to the orchestrator. From GUIDING the first
    follow-up question of the previous response becomes the next question.
    """

    def __init__(
        self,
        orchestrator: TutorOrchestrator,
        db: Optional[DatabaseClient] = None,
        max_steps: int = MAX_GUIDED_STEPS,
    ):
        self.orchestrator = orchestrator
        self.db = db
        self.max_steps = max(1, min(max_steps, MAX_GUIDED_STEPS))

    async def get_guided_session(self, user_id: str, question: str) -> GuidedSession:
        state = GuidedState.ASKING
        current_question = question
        response: Optional[TutorResponse] = None
        steps: List[GuidedStep] = []
        topic = question.strip()[:MAX_TOPIC_LENGTH]

        while state != GuidedState.DONE:
            if state == GuidedState.ASKING:
                state = GuidedState.WAITING_FOR_MODEL
                response = await self.orchestrator.get_response(user_id, current_question)
                steps.append(
                    GuidedStep(step=len(steps) + 1, question=current_question, response=response)
                )
                await self._remember(user_id, current_question, response, topic)
                state = self._next_state(response, len(steps))

            elif state == GuidedState.GUIDING:
                current_question = response.followup_questions[0]
                state = GuidedState.ASKING

            logger.debug(f"Guided session for {user_id} moved to {state.value}")

        reached_cap = len(steps) >= self.max_steps and not response.is_final_answer
        if reached_cap:
            logger.info(
                f"Guided session for {user_id} stopped at the {self.max_steps}-step cap"
            )

        return GuidedSession(
            final_answer=response.answer, steps=steps, reached_step_cap=reached_cap
        )

    def _next_state(self, response: TutorResponse, step_count: int) -> GuidedState:
        if response.is_final_answer:
            return GuidedState.DONE
        if not response.followup_questions:
            return GuidedState.DONE
        if step_count >= self.max_steps:
            return GuidedState.DONE
        return GuidedState.GUIDING

    async def _remember(
        self, user_id: str, question: str, response: TutorResponse, topic: str
    ) -> None:
        if self.db is None or response.is_fallback:
            return
        try:
            await self.db.save_session_memory(user_id, question, response.answer, topic)
        except Exception as e:
            logger.error(f"Error saving session memory: {str(e)}")
