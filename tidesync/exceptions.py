"""Exceptions raised by the tidesync scheduling engine."""


class SyncError(Exception):
    """Base exception for scheduling engine errors."""
    
    def __init__(self, message: str, job: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.job = job
    
    def __str__(self) -> str:
        if self.job:
            return f"{self.message} (job: {self.job})"
        return self.message


class InvalidConfig(SyncError):
    """Raised for sub-minimum intervals, negative ranges or malformed job declarations."""
    pass


class JobNotRegistered(SyncError, KeyError):
    """Raised when a job name is not present in the registry."""
    
    def __init__(self, job: str) -> None:
        super().__init__("Job is not registered", job)


class PersistenceFailure(SyncError):
    """Raised when the backing store cannot be read or written."""
    pass


class SyncFailure(SyncError):
    """A job body signalled failure.
    
    Never propagated past the scheduler; recorded on the job state.
    """
    
    def __init__(self, job: str, cause: BaseException) -> None:
        super().__init__(f"{type(cause).__name__}: {cause}", job)
        self.cause = cause


class NoNetwork(SyncError):
    """Network was unreachable when a job was due."""
    pass
