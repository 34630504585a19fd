import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from testgenius.config import DEFAULT_NUM_QUESTIONS, MAX_DIFFICULTY, MIN_DIFFICULTY
from testgenius.domain import (
    LanguageOption,
    NegativeMarkingSettings,
    PendingTestConfig,
    TestInputMethod,
    TimeSettings,
)
from testgenius.errors import AIServiceError, DocumentError, GenerationError
from testgenius.gemini_client import GeminiClient
from testgenius.logging_setup import setup_console_logging
from testgenius.serialization import serialize_questions
from testgenius.services.document_service import ingest_document, resolve_mime_type
from testgenius.services.generation_service import GeminiQuestionGenerator
from testgenius.session_state import default_test_name
from testgenius.utils import json_dump

setup_console_logging()
logger = logging.getLogger("testgenius.cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="TestGenius test generator")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    gen = sub.add_parser("generate", help="Generate a test and write it as JSON")
    source = gen.add_mutually_exclusive_group(required=True)
    source.add_argument("--topic", type=str, help="Topic to generate questions about")
    source.add_argument("--syllabus", type=str, help="Syllabus text to generate questions from")
    source.add_argument("--file", type=Path, help="Document (.txt, .docx, .pdf, image)")
    gen.add_argument(
        "--num-questions",
        type=int,
        default=None,
        help=f"Number of questions (default {DEFAULT_NUM_QUESTIONS}; 0 extracts all from a document)",
    )
    gen.add_argument(
        "--language",
        choices=[option.value for option in LanguageOption],
        default=None,
    )
    gen.add_argument(
        "--difficulty",
        type=int,
        choices=range(MIN_DIFFICULTY, MAX_DIFFICULTY + 1),
        default=None,
    )
    gen.add_argument("--instructions", type=str, default=None, help="Custom instructions")
    gen.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output JSON file (prints to stdout when omitted)",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PendingTestConfig:
    if args.file is not None:
        data = args.file.read_bytes()
        document = ingest_document(
            args.file.name, resolve_mime_type(args.file.name, None), data
        )
        method = TestInputMethod.DOCUMENT
        content = document.content
        mime_type = document.mime_type
        file_name = document.file_name
    else:
        method = TestInputMethod.TOPIC if args.topic else TestInputMethod.SYLLABUS
        content = args.topic or args.syllabus
        mime_type = None
        file_name = None

    num_questions = args.num_questions
    if num_questions is None:
        num_questions = 0 if method == TestInputMethod.DOCUMENT else DEFAULT_NUM_QUESTIONS
    is_document = method == TestInputMethod.DOCUMENT
    return PendingTestConfig(
        input_method=method,
        content=content,
        num_questions=num_questions,
        time_settings=TimeSettings.untimed(),
        negative_marking=NegativeMarkingSettings(),
        test_name=default_test_name(method, file_name),
        mime_type=mime_type,
        original_file_name=file_name,
        selected_language=LanguageOption(args.language) if args.language else None,
        difficulty_level=None if is_document else args.difficulty,
        custom_instructions=None if is_document else args.instructions,
    )


def run_generate(args: argparse.Namespace) -> int:
    try:
        config = build_config(args)
        generator = GeminiQuestionGenerator(GeminiClient())
        questions = generator.generate_for_config(config)
    except (OSError, DocumentError, GenerationError, AIServiceError) as exc:
        logger.error("%s", exc)
        return 1

    payload = {
        "testName": config.test_name,
        "inputMethod": config.input_method.value,
        "questions": serialize_questions(questions),
    }
    text = json_dump(payload)
    if args.output is None:
        print(text)
    else:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text, encoding="utf-8")
        print(f"Saved {len(questions)} questions to {args.output}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.command == "serve":
        uvicorn.run("testgenius.app:app", host=args.host, port=args.port, reload=args.reload)
        return 0
    return run_generate(args)


if __name__ == "__main__":
    sys.exit(main())
