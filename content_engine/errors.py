"""
Error taxonomy for the AI job pipeline.

Errors raised while processing a single job are contained to that job's
record; they never stop the worker loop.
"""


class JobPipelineError(Exception):
    """Base class for job pipeline errors."""
    pass


class ValidationError(JobPipelineError):
    """Producer request is malformed or missing required fields.

    Raised before any state is written.
    """

    def __init__(self, message: str, missing_fields: list[str] | None = None):
        super().__init__(message)
        self.missing_fields = missing_fields or []


class ProviderError(JobPipelineError):
    """An external AI provider failed or returned an error."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class UnknownJobType(JobPipelineError):
    """No generation strategy is registered for the job's type."""

    def __init__(self, job_type: str):
        super().__init__(f"Unknown job type: {job_type}")
        self.job_type = job_type


class OrphanedJob(JobPipelineError):
    """A job record and its queue entry are out of sync."""

    def __init__(self, job_id: str, reason: str):
        super().__init__(f"Orphaned job {job_id}: {reason}")
        self.job_id = job_id
        self.reason = reason


class UnmatchedCompletion(JobPipelineError):
    """A completion notification references a task this system never issued."""

    def __init__(self, task_id: str):
        super().__init__(f"No job found for provider task {task_id}")
        self.task_id = task_id


class AssetPersistenceError(JobPipelineError):
    """Asset rows could not be written for a completed provider task."""
    pass


class TransferFailure(JobPipelineError):
    """Moving an asset to permanent storage failed."""
    pass
