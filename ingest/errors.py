"""Error taxonomy for the ingest pipeline."""

# Record fields keep at most this much diagnostic text.
MAX_ERROR_CHARS = 4000


class PipelineError(Exception):
    """Base class for every failure the pipeline raises on purpose."""


class ValidationError(PipelineError):
    """The bundle's manifest or directory layout is defective. Never retried."""


class ProbeError(PipelineError):
    """The input video's duration could not be discovered."""


class TranscodeError(PipelineError):
    def __init__(self, message: str, exit_code: int | None = None, output: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output

    def details(self) -> str:
        text = str(self)
        if self.output:
            text = f"{text}\n{self.output}"
        return truncate(text)


class RelocationError(PipelineError):
    """Copy, verify or delete failed while moving a bundle between stage roots."""


class DuplicateAdmissionError(PipelineError):
    """A bundle with the same name is already in flight."""


class Cancelled(Exception):
    """Work interrupted by pipeline shutdown. Not a job failure: the bundle is redone on the next start."""


def truncate(text: str, limit: int = MAX_ERROR_CHARS) -> str:
    return text if len(text) <= limit else text[-limit:]


def describe(exc: Exception) -> str:
    """Text stored in a record's error_details for ``exc``."""
    if isinstance(exc, TranscodeError):
        return exc.details()
    return truncate(str(exc) or exc.__class__.__name__)
