"""Pipeline exceptions — each carries the outcome code surfaced to callers."""

from config.schemas import OutcomeCode


class PipelineError(Exception):
    code: OutcomeCode = OutcomeCode.UPSTREAM_FAILED

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class InvalidInputError(PipelineError):
    code = OutcomeCode.INVALID_INPUT


class CallNotFoundError(PipelineError):
    code = OutcomeCode.NOT_FOUND


class CallForbiddenError(PipelineError):
    code = OutcomeCode.FORBIDDEN


class InvalidStateError(PipelineError):
    """Call exists but is not in a state the operation can work on (e.g. no transcript)."""
    code = OutcomeCode.INVALID_STATE


class AudioMissingError(PipelineError):
    """Recording file is absent from storage — upload failed or is still pending."""
    code = OutcomeCode.NOT_FOUND


class TranscriptionFailedError(PipelineError):
    code = OutcomeCode.UPSTREAM_FAILED


class EmptyTranscriptionError(PipelineError):
    """ASR response carried neither words nor segments."""
    code = OutcomeCode.UPSTREAM_FAILED


class AnalysisTimeoutError(PipelineError):
    code = OutcomeCode.TIMEOUT

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Analysis timed out after {timeout_seconds:g} seconds.")
        self.timeout_seconds = timeout_seconds


class InvalidResponseError(PipelineError):
    """LLM output failed JSON parsing or schema validation."""
    code = OutcomeCode.INVALID_RESPONSE

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class PersistenceError(PipelineError):
    code = OutcomeCode.PERSISTENCE_FAILED


class DuplicateReportError(PersistenceError):
    """Another analysis already linked a report to this call."""

    def __init__(self, call_id: str, existing_report_id: str | None):
        super().__init__(f"Report already exists for call {call_id}")
        self.existing_report_id = existing_report_id
