"""Error taxonomy for the refinement and validation engine."""

from typing import Optional


class GardenError(Exception):
    """Base class for all recoverable prompt-garden errors."""

    kind: str = "garden_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CredentialMissing(GardenError):
    """No provider credential is available for an outbound call."""

    kind = "credential_missing"

    def __init__(self, message: str = "A provider API key is required. Set one before running prompts."):
        super().__init__(message)


class TransportError(GardenError):
    """The model provider returned a non-2xx status or the request failed."""

    kind = "transport_error"

    def __init__(
        self,
        message: str,
        status: int = 0,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.status = status
        self.cause = cause


class CaseImportError(GardenError):
    """A case file could not be turned into training and testing sets."""

    kind = "import_error"


class EmptyDataset(CaseImportError):
    """The file contained no valid (prompt, expected output) rows."""

    kind = "empty_dataset"

    def __init__(self, message: str = "No valid test cases found in the file"):
        super().__init__(message)


class InsufficientData(CaseImportError):
    """The file has fewer rows than the requested training count."""

    kind = "insufficient_data"

    def __init__(self, available: int, requested: int):
        super().__init__(
            f"File contains {available} test cases, but {requested} were requested for training"
        )
        self.available = available
        self.requested = requested


class InvalidState(GardenError):
    """An operation was attempted in a state that does not allow it."""

    kind = "invalid_state"
