from __future__ import annotations


class PipelineError(Exception):
    """
    Base class for every failure the processing pipeline knows how to report.
    The message is what a polling client ends up seeing on an errored job.
    """


class ConfigurationError(PipelineError):
    pass


class ValidationError(PipelineError):
    """
    Rejected at submission: disallowed media type, empty or oversize payload.
    Never reaches the queue.
    """

    def __init__(self, message: str, reason: str = "invalid"):
        super().__init__(message)
        self.reason = reason


class ExtractionError(PipelineError):
    pass


class InsufficientContentError(ExtractionError):
    pass


class ExtractionTimeoutError(ExtractionError):
    pass


class EnrichmentError(PipelineError):
    pass


class EnrichmentConfigurationError(EnrichmentError):
    pass


class ParseContractViolation(EnrichmentError):
    """
    The model answered, but not with the JSON-only payload it was asked for.
    """

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response


class JobNotFoundError(PipelineError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidTransitionError(PipelineError):
    pass
