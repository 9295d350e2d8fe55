"""Free-text answers for application form questions."""

from typing import Optional

from jobnick_agent.config import settings
from jobnick_agent.core.errors import CompletionError
from jobnick_agent.core.events import StatusChannel
from jobnick_agent.core.models import UserProfile
from jobnick_agent.jobs.completion import TextCompletionService
from jobnick_agent.jobs.prompts import build_answer_prompt
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)


class AnswerGenerator:
    """Writes answers to the questions a listing's form leaves unfilled."""

    def __init__(
        self,
        completion: TextCompletionService,
        events: Optional[StatusChannel] = None,
        resume_max_chars: Optional[int] = None,
    ):
        self.completion = completion
        self.events = events or StatusChannel()
        self.resume_max_chars = resume_max_chars or settings.resume_max_chars
        self.logger = logger.bind(component="answer_generator")

    async def generate_answer(
        self,
        question: str,
        resume_text: str,
        profile: Optional[UserProfile] = None,
    ) -> Optional[str]:
        """
        Answer one question from the resume.

        Returns:
            The answer text, or None when no answer could be produced; the
            field is then left for the form's own validation.
        """
        question = (question or "").strip()
        if not question:
            return None
        if not self.completion.is_configured:
            self.logger.debug("No completion service, leaving question unanswered", question=question)
            return None

        prompt = build_answer_prompt(question, resume_text, profile, self.resume_max_chars)
        try:
            response = await self.completion.complete(prompt)
        except CompletionError as e:
            self.logger.warning("Answer generation failed", question=question, error=str(e))
            self.events.warning(f"Could not answer '{question}': {e}")
            return None
        except Exception as e:
            self.logger.error("Unexpected answer generation failure", question=question, error=str(e))
            self.events.error(f"Could not answer '{question}': {e}")
            return None

        answer = (response or "").strip()
        return answer or None
