"""Domain errors raised by the job service and its adapters."""


class GatewayError(Exception):
    """Base class for errors raised inside the gateway."""


class UploadValidationError(GatewayError):
    """The upload request is missing data or is not a CSV dataset."""

    status_code = 400


class UploadTooLargeError(UploadValidationError):
    status_code = 413


class StorageError(GatewayError):
    """The content store rejected the dataset or could not be reached."""


class DispatchError(GatewayError):
    """The workflow webhook could not be triggered."""
