"""
Error taxonomy for scheduling and content generation.

Validation, configuration and state errors surface synchronously to the
caller. Transient generation errors are retried inside the orchestrator and
only reach admins as a failed job's ``last_error``.
"""


class PulseError(Exception):
    """Base class for domain errors."""

    error_code = "PULSE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PulseError):
    """Missing or malformed input, rejected before it reaches the store."""

    error_code = "VALIDATION_ERROR"


class NotFoundError(PulseError):
    error_code = "NOT_FOUND"


class ConfigurationError(PulseError):
    """No usable theme or agent; the job fails without retry."""

    error_code = "CONFIGURATION_ERROR"


class GenerationError(PulseError):
    error_code = "GENERATION_ERROR"


class TransientGenerationError(GenerationError):
    """Network failure, timeout or retryable agent error."""

    error_code = "TRANSIENT_GENERATION_ERROR"


class PermanentGenerationError(GenerationError):
    """Malformed or rejected agent response; never retried."""

    error_code = "PERMANENT_GENERATION_ERROR"


class ConflictError(PulseError):
    error_code = "CONFLICT"


class StateError(PulseError):
    """Illegal job status transition."""

    error_code = "STATE_ERROR"


class SchedulerError(PulseError):
    error_code = "SCHEDULER_ERROR"
