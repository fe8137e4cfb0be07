"""Exception hierarchy for the churn batch pipeline."""

from typing import List


class ChurnPipelineError(Exception):
    """Base class for all pipeline errors."""


# === Fatal: file rejected before any write ===

class ValidationError(ChurnPipelineError):
    """Uploaded file cannot be processed at all."""


class MissingColumnsError(ValidationError):
    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required columns: {', '.join(self.missing)}")


class EmptyFileError(ValidationError):
    def __init__(self, message: str = "CSV file must have at least a header and one data row"):
        super().__init__(message)


class InvalidEncodingError(ValidationError):
    def __init__(self, detail: str = ""):
        message = "CSV file must be UTF-8 encoded"
        super().__init__(f"{message}: {detail}" if detail else message)


class FileNotFoundInStoreError(ValidationError):
    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(f"Failed to download file: {file_name}")


class AuthError(ChurnPipelineError):
    """Missing or invalid caller credential."""


# === Isolated to a single row ===

class RowError(ChurnPipelineError):
    """Failure confined to one input row."""


class MissingCustomerIdError(RowError):
    def __init__(self):
        super().__init__("Missing customer_id")


class PredictionPersistenceError(RowError):
    """Prediction insert failed for one customer."""


# === Recovered or logged only ===

class UpstreamPredictionError(ChurnPipelineError):
    """Remote model call failed; the rule engine takes over."""


class SummaryPersistenceError(ChurnPipelineError):
    """Analysis record could not be created; the batch cannot be attributed."""


class DigestError(ChurnPipelineError):
    """Digest notification failed. Never propagated to the caller."""
