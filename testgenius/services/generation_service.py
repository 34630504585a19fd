"""Question generation through the Gemini API."""
import json
import logging
import re
import time
from typing import Any

from testgenius.config import (
    DEFAULT_NUM_QUESTIONS,
    GENERATION_TEMPERATURE,
    NUM_QUESTIONS_AI_DECIDES,
    OPTIONS_PER_QUESTION,
    SUPPORTED_DOCX_MIME_TYPE,
    SUPPORTED_TEXT_TYPES,
)
from testgenius.domain import (
    LanguageOption,
    PendingTestConfig,
    Question,
    QuestionStatus,
    TestInputMethod,
)
from testgenius.errors import AIServiceError, DocumentError, GenerationError
from testgenius.gemini_client import GeminiClient, inline_data_part, text_part

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)
# "options": [...] "correctAnswerIndex" -> "options": [...], "correctAnswerIndex"
_MISSING_COMMA_RE = re.compile(r"\]\s*\"")

EXTRACTION_PROMPT = (
    "Extract all text from this document/image. Respond with only the extracted "
    "text. If the document is primarily in a non-English language (e.g., Hindi), "
    "extract the text in that language."
)

_PASSAGE_INSTRUCTION = (
    "Identify if there is a passage or context that should be displayed *before* "
    "the question. If so, put this passage (which can include simple HTML like "
    "<p> or <table> tags) into a 'passageText' field. The 'questionText' field "
    "should then contain the actual question that follows the passage. If there "
    "is no preceding passage, the 'passageText' field can be omitted or null."
)

_QUESTION_KINDS = (
    "This includes standard multiple-choice questions, questions with HTML tables "
    "or paragraphs, \"Match the Following\" type questions, and questions preceded "
    "by a contextual passage"
)


def _language_instructions(language: LanguageOption | None) -> str:
    if language is None:
        return ""
    lang = language.value
    return (
        f"\n- Language Focus: Generate questions *strictly* in **{lang}**.\n"
        f"If the document contains text in multiple languages, focus *only* on the "
        f"**{lang}** content for question generation.\n"
        f"If a question or its options are primarily in another language within the "
        f"source, ignore that specific question if it cannot be accurately "
        f"represented in **{lang}**.\n"
        f"All passageText, questionText, and options in the JSON output must be in "
        f"**{lang}**.\n"
    )


def _json_structure_note(target_language: str) -> str:
    return f"""
The response MUST be a valid JSON array of objects. Each object in the array must strictly follow this structure:
{{
  "passageText": "Optional. Text of a passage or context that precedes the question in {target_language}. Can contain simple HTML like <p> or <table>.",
  "questionText": "The full text of the question in {target_language}, following any passage. Can contain simple HTML like <p> or <table>. For 'Match the Following' questions, include lists and codes here as described below.",
  "options": ["Option A in {target_language}", "Option B in {target_language}", "Option C in {target_language}", "Option D in {target_language}"],
  "correctAnswerIndex": 0
}}
CRITICAL JSON FORMATTING RULES:
1. Ensure 'correctAnswerIndex' is a number between 0 and 3.
2. The 'options' array MUST contain exactly 4 distinct string elements.
3. Each string element within the 'options' array MUST be fully enclosed in double quotes.
4. After the closing square bracket ']' of the 'options' array there MUST be a comma ',' immediately after the ']'. Example: "options": ["A", "B", "C", "D"], "correctAnswerIndex": 0
5. All string values (for 'passageText', 'questionText', and in the 'options' array) MUST be correctly enclosed in double quotes.
6. Do not place a comma after the last element in an array or the last key-value pair in an object.
7. 'passageText' and 'questionText' can include simple HTML for formatting, such as <p>, <table>, <thead>, <tbody>, <tr>, <th> and <td>. Ensure any HTML is well-formed and properly escaped within the JSON string.
8. Do not include ANY introductory text, explanations, or any characters outside the main JSON array itself. The entire response should be ONLY the JSON array.
9. For "Match the Following" questions, put the introductory text, a valid HTML <table> (a <thead> row with two <th> list headers, one <tbody> row with two <td> cells per pair) and the concluding text in 'questionText'. Do not use text-based \\n separation for these questions. The 'options' array holds the answer codes, like ["1. A-IV, B-II, C-I, D-III", "2. A-II, B-IV, C-III, D-I", ...].
"""


def build_generation_prompt(
    input_method: TestInputMethod,
    content: str,
    num_questions: int,
    language: LanguageOption | None = None,
    difficulty_level: int | None = None,
    custom_instructions: str | None = None,
) -> str:
    """Assemble the question-generation prompt for one request."""
    target_language = language.value if language else "the source document's primary language"
    language_part = _language_instructions(language)
    is_document = input_method == TestInputMethod.DOCUMENT

    if is_document:
        processing = (
            "The provided content is from a document, potentially a test paper.\n"
            "Your primary tasks are:\n"
            f"- {_PASSAGE_INSTRUCTION}\n"
            "- Identify Actual Questions: Locate questions within the text. Questions "
            "often begin with numbering like \"Question 1\", \"Q.1.\", \"1.\", "
            "\"प्रश्न १\", \"प्र. १.\", and so on.\n"
            "- Ignore Non-Question Content: Disregard any introductory material, "
            "instructions to candidates, cover pages, tables of contents, or any text "
            "that is not part of a passage, a question, and its multiple-choice options.\n"
            f"{language_part}"
        )
    else:
        processing = f"{_PASSAGE_INSTRUCTION}\n{language_part}"
        if difficulty_level:
            processing += (
                f"\n- Difficulty Level: The questions should be generated at a "
                f"difficulty level of **{difficulty_level}** on a scale of 1 to 5, "
                f"where 1 is the easiest and 5 is the hardest."
            )
        if custom_instructions:
            processing += f"\n- User-Provided Custom Instructions: {custom_instructions}"

    structure = _json_structure_note(target_language)

    if num_questions == NUM_QUESTIONS_AI_DECIDES and is_document:
        return (
            "You are an expert multilingual test creator. Based on the following "
            f"document content:\n---\n{content}\n---\n{processing}\n"
            "Extract ALL identifiable unique multiple-choice questions from the "
            f"provided document content in {target_language}. {_QUESTION_KINDS}.\n"
            f"{structure}"
        )

    count = num_questions if num_questions > 0 else DEFAULT_NUM_QUESTIONS
    return (
        "You are an expert multilingual test creator. Based on the following "
        f"{input_method.value} content:\n---\n{content}\n---\n{processing}\n"
        f"Generate EXACTLY {count} unique multiple-choice questions. "
        f"{_QUESTION_KINDS}, if appropriate for the content.\n"
        f"{structure}"
    )


def parse_json_from_markdown(text: str) -> Any:
    """Parse a JSON payload that may be wrapped in a markdown code fence.

    Returns None when the text cannot be parsed.
    """
    json_str = (text or "").strip()
    match = _FENCE_RE.match(json_str)
    if match and match.group(2):
        json_str = match.group(2).strip()
    json_str = _MISSING_COMMA_RE.sub('], "', json_str)
    try:
        return json.loads(json_str)
    except ValueError as exc:
        logger.error("Failed to parse JSON response: %s", exc)
        logger.error("Raw text: %s", text)
        return None


def _question_from_payload(item: Any, id_prefix: str, index: int) -> Question | None:
    if not isinstance(item, dict):
        return None
    question_text = item.get("questionText")
    options = item.get("options")
    answer = item.get("correctAnswerIndex")
    if not isinstance(question_text, str) or not question_text.strip():
        return None
    if not isinstance(options, list) or len(options) != OPTIONS_PER_QUESTION:
        return None
    if isinstance(answer, bool) or not isinstance(answer, (int, float)):
        return None
    answer = int(answer)
    if not 0 <= answer < OPTIONS_PER_QUESTION:
        return None
    passage = item.get("passageText")
    return Question(
        id=f"{id_prefix}-{index}",
        passage_text=passage if isinstance(passage, str) and passage.strip() else None,
        question_text=question_text,
        options=[str(option) for option in options],
        correct_answer_index=answer,
        status=QuestionStatus.UNVISITED,
    )


def generate_questions(
    client: GeminiClient,
    input_method: TestInputMethod,
    content: str,
    num_questions: int,
    language: LanguageOption | None = None,
    difficulty_level: int | None = None,
    custom_instructions: str | None = None,
) -> list[Question]:
    """Ask the AI for a question set and validate what comes back."""
    prompt = build_generation_prompt(
        input_method,
        content,
        num_questions,
        language=language,
        difficulty_level=difficulty_level,
        custom_instructions=custom_instructions,
    )
    target_language = language.value if language else "the source document's primary language"
    try:
        text = client.generate(
            prompt,
            temperature=GENERATION_TEMPERATURE,
            response_mime_type="application/json",
        )
        payload = parse_json_from_markdown(text)
        if not isinstance(payload, list):
            raise GenerationError(
                "AI did not return valid question data. The response was not a JSON array."
            )
        if not payload:
            raise GenerationError(
                "AI returned an empty list of questions. This might be because no "
                "questions were identifiable in the provided content, no content "
                f"matched the selected language ({target_language}), or the "
                "combination of topic/syllabus and difficulty yielded no results. "
                "Please check your input or try different settings."
            )
        id_prefix = f"q-{int(time.time() * 1000)}"
        questions: list[Question] = []
        for index, item in enumerate(payload):
            question = _question_from_payload(item, id_prefix, index)
            if question is None:
                logger.warning("Dropping malformed question at position %d", index)
                continue
            questions.append(question)
        if not questions:
            raise GenerationError(
                "AI returned questions in an unexpected format. Please try again."
            )
    except (AIServiceError, GenerationError) as exc:
        logger.error("Error generating questions: %s", exc)
        raise GenerationError(f"Failed to generate questions: {exc}") from exc
    logger.info("Generated %d questions from %s input", len(questions), input_method.value)
    return questions


def extract_text_from_inline_data(
    client: GeminiClient, base64_data: str, mime_type: str
) -> str:
    """Let the AI read the text out of a PDF or image."""
    parts = [inline_data_part(base64_data, mime_type), text_part(EXTRACTION_PROMPT)]
    try:
        return client.generate_multimodal(parts)
    except AIServiceError as exc:
        logger.error("Error extracting text from inline data: %s", exc)
        if exc.status_code == 400:
            raise DocumentError(
                "The uploaded file could not be processed by the AI. It might be "
                "corrupted, too large, or an unsupported variation of the MIME type. "
                "Please try a different file."
            ) from exc
        raise DocumentError("Failed to extract text using AI.") from exc


class GeminiQuestionGenerator:
    """Turns a pending test config into questions, reading documents first."""

    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    def source_text(self, config: PendingTestConfig) -> str:
        if config.input_method != TestInputMethod.DOCUMENT:
            return config.content
        mime_type = config.mime_type or ""
        # .txt and .docx uploads are already text by the time they reach the config
        if mime_type in SUPPORTED_TEXT_TYPES or mime_type == SUPPORTED_DOCX_MIME_TYPE or not mime_type:
            return config.content
        try:
            return extract_text_from_inline_data(self.client, config.content, mime_type)
        except DocumentError as exc:
            raise GenerationError(str(exc)) from exc

    def generate_for_config(self, config: PendingTestConfig) -> list[Question]:
        text = self.source_text(config)
        if not text or not text.strip():
            raise GenerationError(
                "Could not extract any text from the document. The document might be "
                "empty, image-based without clear text, or in an unsupported format."
            )
        return generate_questions(
            self.client,
            config.input_method,
            text,
            config.num_questions,
            language=config.selected_language,
            difficulty_level=config.difficulty_level,
            custom_instructions=config.custom_instructions,
        )
