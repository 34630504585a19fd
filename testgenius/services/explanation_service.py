"""AI explanations and follow-up chat for reviewed questions."""
import logging
import uuid
from typing import Any, Iterator

from testgenius.config import CHAT_TEMPERATURE, EXPLANATION_TEMPERATURE
from testgenius.domain import ChatMessage, Question
from testgenius.errors import AIServiceError
from testgenius.gemini_client import GeminiClient, text_part

logger = logging.getLogger(__name__)

CHAT_GREETING = "Hello. I've reviewed the material. What would you like to clarify?"
CONTEXT_ACKNOWLEDGEMENT = (
    "Context understood. I am ready to answer the user's follow-up question as Elsa."
)
RATE_LIMIT_MESSAGE = (
    "Explanation generation failed due to API rate limits. Please try again later."
)

ELSA_SYSTEM_INSTRUCTION = """You are Elsa, a helpful AI assistant.
Your personality is that of a razor-sharp thinker and natural strategist, known for your ability to solve complex problems, speak with clarity, and stay composed under pressure. You value truth, elegance, and independence. You are brilliant, but also grounded, kind, and trustworthy.

When the user asks for clarification on a test question, provide clear, concise, and accurate answers that reflect this personality.
- Use markdown for formatting when it enhances clarity (e.g., **bold** for emphasis, *italics* for terms, and bulleted lists using '*' or '-'). Each list item must be on a new line.
- Stick to the context of the original question. Avoid introducing new topics unless directly relevant.
- If a user's follow-up seems to misunderstand, gently guide them back to the core concepts.
- Keep responses brief and to the point.
- Do not offer to change the original question's correct answer. You are here to explain and clarify.
"""


def option_letter(index: int) -> str:
    return chr(ord("A") + index)


def _question_block(question: Question) -> str:
    lines = []
    if question.passage_text:
        lines.append(f"Passage/Context:\n{question.passage_text}\n---")
    lines.append(f"Question: {question.question_text}")
    lines.append("Options:")
    lines.extend(
        f"{option_letter(i)}. {option}" for i, option in enumerate(question.options)
    )
    correct = question.correct_answer_index
    lines.append(f"Correct Answer: {option_letter(correct)}. {question.options[correct]}")
    return "\n".join(lines)


def build_explanation_prompt(question: Question) -> str:
    answer = question.user_answer_index
    if answer is not None and 0 <= answer < len(question.options):
        user_line = f"User's Answer: {option_letter(answer)}. {question.options[answer]}"
    else:
        user_line = "User did not answer."
    return (
        "You are an expert tutor. For the following multiple-choice question:\n"
        f"---\n{_question_block(question)}\n{user_line}\n---\n"
        "Provide a concise and clear explanation for why the correct answer is correct.\n"
        "If the user answered, and their answer was incorrect, also briefly explain why "
        "their chosen answer is incorrect.\n"
        "Focus on being helpful and educational. Keep the explanation to a few sentences.\n"
        "Do not repeat the question or options in your explanation unless absolutely "
        "necessary for clarity.\n"
        "The explanation should be in the same language as the question if possible, "
        "otherwise English."
    )


def generate_explanation(client: GeminiClient, question: Question) -> str:
    try:
        return client.generate(
            build_explanation_prompt(question), temperature=EXPLANATION_TEMPERATURE
        )
    except AIServiceError as exc:
        logger.error("Error generating explanation: %s", exc)
        if exc.is_rate_limited:
            raise AIServiceError(RATE_LIMIT_MESSAGE, status_code=429) from exc
        raise AIServiceError(
            "Failed to generate explanation using AI.", status_code=exc.status_code
        ) from exc


def _new_message(sender: str, text: str, error: bool = False) -> ChatMessage:
    return ChatMessage(id=uuid.uuid4().hex, sender=sender, text=text, error=error)


class FollowUpChat:
    """A follow-up conversation about one reviewed question."""

    def __init__(
        self,
        client: GeminiClient,
        question: Question,
        explanation: str | None = None,
    ) -> None:
        self.client = client
        self.question_id = question.id
        if explanation:
            explanation_text = f"Explanation: {explanation}"
        else:
            explanation_text = (
                "An official explanation has not been provided or generated for this "
                "question yet. Based on the question and the correct answer, please "
                "assist the user."
            )
        context = (
            "The user is asking a follow-up question about the following "
            "multiple-choice question and its official explanation (if provided).\n"
            f"---\n{_question_block(question)}\n{explanation_text}\n---\n"
            "This is the context. The user's next message will be their actual question."
        )
        self.history: list[dict[str, Any]] = [
            {"role": "user", "parts": [text_part(context)]},
            {"role": "model", "parts": [text_part(CONTEXT_ACKNOWLEDGEMENT)]},
        ]
        self.messages: list[ChatMessage] = [_new_message("gemini", CHAT_GREETING)]

    def send_message_stream(self, text: str) -> Iterator[str]:
        """Stream the model's reply; both turns join the history once it finishes."""
        user_turn = {"role": "user", "parts": [text_part(text)]}
        self.messages.append(_new_message("user", text))
        chunks: list[str] = []
        try:
            for chunk in self.client.stream_contents(
                self.history + [user_turn],
                temperature=CHAT_TEMPERATURE,
                system_instruction=ELSA_SYSTEM_INSTRUCTION,
            ):
                chunks.append(chunk)
                yield chunk
        except AIServiceError as exc:
            logger.error("Follow-up chat failed: %s", exc)
            self.messages.append(
                _new_message("gemini", f"Sorry, I ran into an error: {exc}", error=True)
            )
            raise
        reply = "".join(chunks)
        self.history.append(user_turn)
        self.history.append({"role": "model", "parts": [text_part(reply)]})
        self.messages.append(_new_message("gemini", reply))
