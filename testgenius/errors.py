"""Domain errors raised by the session engine and service layer."""


class SessionError(Exception):
    """An operation is not valid in the session's current state."""


class GenerationError(Exception):
    """Question generation failed or produced no usable questions."""


class DocumentError(Exception):
    """An uploaded document could not be read."""


class AIServiceError(Exception):
    """The AI text service call failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429
