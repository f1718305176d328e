"""Error types shared by the orchestrator, trigger and stores."""


class AuditorError(Exception):
    """Base class for every failure raised by the auditor backend."""


class StorageError(AuditorError):
    pass


class StatusStoreError(AuditorError):
    pass


class UploadError(AuditorError):
    """The configuration file could not be persisted to the content store."""


class AnalysisError(AuditorError):
    """The model call produced nothing usable."""


class TriggerRejected(AuditorError):
    """Raised by a trigger that refuses the request.

    ``code`` is one of ``unauthenticated``, ``invalid-argument`` or ``internal``.
    """

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class TriggerError(AuditorError):
    """The remote analysis trigger failed or rejected the submission."""

    def __init__(self, message: str, code: str = "internal"):
        super().__init__(message)
        self.code = code
        self.message = message
