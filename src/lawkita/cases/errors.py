"""Error taxonomy for the legal-case pipeline.

Per-document errors are caught by the orchestrator and recorded in the
job result. Only JobFatalError is allowed to abort a run.
"""


class PipelineError(Exception):
    """Base class for pipeline errors."""

    error_code = "PIPELINE_ERROR"


class SourceUnavailableError(PipelineError):
    """A source could not be fetched at all."""

    error_code = "SOURCE_UNAVAILABLE"

    def __init__(self, source_name: str, message: str, unavailable: int = 0):
        self.source_name = source_name
        self.unavailable = unavailable
        super().__init__(f"Source {source_name} unavailable: {message}")


class ExtractionTransportError(PipelineError):
    """The extraction service call failed (network, auth, rate limit).

    Retryable.
    """

    error_code = "EXTRACTION_TRANSPORT"


class ExtractionMalformedError(PipelineError):
    """The extraction service returned a response that failed validation."""

    error_code = "EXTRACTION_MALFORMED"

    def __init__(self, message: str, raw_response: str | None = None):
        self.raw_response = raw_response
        super().__init__(message)


class PersistenceConflictError(PipelineError):
    """A concurrent write changed the record between read and write."""

    error_code = "PERSISTENCE_CONFLICT"

    def __init__(self, case_key: str, expected_version: int | None = None):
        self.case_key = case_key
        self.expected_version = expected_version
        super().__init__(
            f"Concurrent update on case {case_key} (expected version {expected_version})"
        )


class JobFatalError(PipelineError):
    """Configuration or credential problem that prevents any progress."""

    error_code = "JOB_FATAL"


class EmptyMergeError(ValueError):
    """merge() was called with no extractions."""
