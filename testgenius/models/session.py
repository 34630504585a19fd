"""Request models for the test-session endpoints.

Field names are camelCase to match the JSON the client already speaks.
"""
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from testgenius.config import (
    DEFAULT_NUM_QUESTIONS,
    MAX_DIFFICULTY,
    MAX_QUESTIONS,
    MIN_DIFFICULTY,
    MIN_NEGATIVE_MARKS,
    NUM_QUESTIONS_AI_DECIDES,
)
from testgenius.domain import (
    LanguageOption,
    NegativeMarkingSettings,
    PendingTestConfig,
    TestInputMethod,
    TimeSettings,
)


class SetupRequest(BaseModel):
    inputMethod: TestInputMethod


class TimeSettingsPayload(BaseModel):
    type: Literal["timed", "untimed"] = "untimed"
    totalSeconds: int | None = None

    @model_validator(mode="after")
    def _check_duration(self) -> "TimeSettingsPayload":
        if self.type == "timed" and (self.totalSeconds is None or self.totalSeconds <= 0):
            raise ValueError("Timed test duration must be greater than 0 seconds.")
        return self

    def to_settings(self) -> TimeSettings:
        if self.type == "timed":
            return TimeSettings.timed(self.totalSeconds)
        return TimeSettings.untimed()


class NegativeMarkingPayload(BaseModel):
    enabled: bool = False
    marksPerQuestion: float = 0.0

    @model_validator(mode="after")
    def _check_marks(self) -> "NegativeMarkingPayload":
        if self.enabled and self.marksPerQuestion < MIN_NEGATIVE_MARKS:
            raise ValueError("Negative marks per question must be positive.")
        return self

    def to_settings(self) -> NegativeMarkingSettings:
        if not self.enabled:
            return NegativeMarkingSettings()
        return NegativeMarkingSettings(enabled=True, marks_per_question=self.marksPerQuestion)


class GenerateRequest(BaseModel):
    """Everything needed to generate one test."""

    inputMethod: TestInputMethod
    content: str = ""
    numQuestions: int = Field(DEFAULT_NUM_QUESTIONS, ge=0, le=MAX_QUESTIONS)
    timeSettings: TimeSettingsPayload = Field(default_factory=TimeSettingsPayload)
    negativeMarking: NegativeMarkingPayload = Field(default_factory=NegativeMarkingPayload)
    testName: str = Field("", max_length=255)
    mimeType: str | None = None
    originalFileName: str | None = Field(None, max_length=255)
    selectedLanguage: LanguageOption | None = None
    difficultyLevel: int | None = Field(None, ge=MIN_DIFFICULTY, le=MAX_DIFFICULTY)
    customInstructions: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def _check_content(self) -> "GenerateRequest":
        if not self.content.strip():
            if self.inputMethod == TestInputMethod.DOCUMENT:
                raise ValueError("Please upload a document.")
            raise ValueError(f"Please enter the {self.inputMethod.value} content.")
        is_document = self.inputMethod == TestInputMethod.DOCUMENT
        if not is_document and self.numQuestions == NUM_QUESTIONS_AI_DECIDES:
            raise ValueError("Please choose how many questions to generate.")
        return self

    def to_config(self) -> PendingTestConfig:
        is_document = self.inputMethod == TestInputMethod.DOCUMENT
        return PendingTestConfig(
            input_method=self.inputMethod,
            content=self.content,
            num_questions=self.numQuestions,
            time_settings=self.timeSettings.to_settings(),
            negative_marking=self.negativeMarking.to_settings(),
            test_name=self.testName.strip(),
            mime_type=self.mimeType if is_document else None,
            original_file_name=self.originalFileName if is_document else None,
            selected_language=self.selectedLanguage,
            difficulty_level=None if is_document else self.difficultyLevel,
            custom_instructions=None if is_document else (self.customInstructions or None),
        )


class StartRequest(BaseModel):
    testName: str | None = Field(None, max_length=255)


class AnswerRequest(BaseModel):
    questionIndex: int = Field(..., ge=0)
    optionIndex: int = Field(..., ge=0)


class NavigateRequest(BaseModel):
    index: int = Field(..., ge=0)


class QuestionIndexRequest(BaseModel):
    questionIndex: int = Field(..., ge=0)


class CorrectionRequest(BaseModel):
    questionIndex: int = Field(..., ge=0)
    correctAnswerIndex: int = Field(..., ge=0)


class ChatMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
