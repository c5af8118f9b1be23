"""
Exception hierarchy for parley.

All exceptions inherit from ParleyError for easy catching.
"""

from typing import Optional


class ParleyError(Exception):
    """Base exception for parley.

    All other exceptions in this module inherit from this,
    allowing callers to catch any parley error with a single except.
    """
    pass


class ConfigurationError(ParleyError):
    """Error in configuration.

    Raised when:
    - Config file not found
    - Config validation fails
    - Required config missing
    """
    pass


class NotFoundError(ParleyError):
    """Unknown project or message id.

    Surfaced to API callers as a 404. Never retried.
    """
    pass


class InvalidRequestError(ParleyError):
    """Request cannot be honoured as given.

    Raised when:
    - A required field is missing
    - A retry targets a message that has no recipient
    - A trigger or retry targets a message that is currently in flight
    """

    def __init__(self, message: str, conflict: bool = False):
        super().__init__(message)
        self.conflict = conflict


class StorageError(ParleyError):
    """Error reading or writing the chat log or project registry."""
    pass


class ExecutionError(ParleyError):
    """Error executing the external agent.

    Raised when:
    - The agent executable is not found or fails to start
    - The agent exits with a non-zero code

    Never surfaced to API callers: the scheduler records it as a
    system reply in the chat log.
    """

    def __init__(
        self,
        reason: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: Optional[int] = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code

    def describe(self) -> str:
        """Text used for the system reply recorded in the chat log."""
        detail = self.stderr.strip() or self.stdout.strip()
        if detail:
            return f"{self.reason}: {detail}"
        return self.reason


class InvocationTimeout(ExecutionError):
    """Agent execution exceeded the configured wall-clock timeout."""
    pass


class NormalizationUnavailable(ParleyError):
    """The secondary normalization service could not be reached.

    Not an error for the pipeline: the interpreter degrades to
    syntactic extraction.
    """
    pass
