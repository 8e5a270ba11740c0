"""Custom exceptions for Photo Retoucher."""

from typing import Optional


class RetoucherError(Exception):
    """Base exception for all application errors.

    Attributes:
        message: Human-readable error description
        error_code: Optional error code for programmatic handling
    """

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class ConfigurationError(RetoucherError):
    """Error in configuration or settings.

    Attributes:
        config_key: The configuration key that caused the error (if applicable)
    """

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message, error_code="CONFIG_ERROR")
        self.config_key = config_key


class ValidationError(RetoucherError):
    """Error validating inputs or parameters.

    Attributes:
        field: The field that failed validation (if applicable)
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, error_code="VALIDATION_ERROR")
        self.field = field


class AssetNotFoundError(RetoucherError):
    """Operation referenced an asset id that is not registered."""

    def __init__(self, asset_id: str):
        super().__init__(f"Unknown asset: {asset_id}", error_code="ASSET_NOT_FOUND")
        self.asset_id = asset_id


class InvalidTransitionError(RetoucherError):
    """Asset status change that would break the status/payload invariants.

    Attributes:
        asset_id: The asset being transitioned
        status: The requested status
    """

    def __init__(self, message: str, asset_id: Optional[str] = None, status: Optional[str] = None):
        super().__init__(message, error_code="INVALID_TRANSITION")
        self.asset_id = asset_id
        self.status = status


class InvalidStateError(RetoucherError):
    """Operation not allowed in the current viewport or orchestrator state."""

    def __init__(self, message: str):
        super().__init__(message, error_code="INVALID_STATE")


class ServiceError(RetoucherError):
    """Failure reported by (or while talking to) the generative image service.

    Attributes:
        status_code: HTTP status code when one was received
    """

    error_code_name = "SERVICE_ERROR"
    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, error_code=self.error_code_name)
        self.status_code = status_code


class TransientServiceError(ServiceError):
    """Rate-limited or overloaded service; retrying may succeed unchanged."""

    error_code_name = "SERVICE_BUSY"
    retryable = True


class TerminalServiceError(ServiceError):
    """Bad request, refusal or other failure that retrying will not fix."""

    error_code_name = "SERVICE_ERROR"


class CredentialError(TerminalServiceError):
    """API key missing or rejected. Futile to retry for any asset."""

    error_code_name = "CREDENTIAL_ERROR"


class EmptyResponseError(TerminalServiceError):
    """Service answered but returned no usable image."""

    error_code_name = "EMPTY_RESPONSE"


class GeometrySyncError(RetoucherError):
    """Mask raster does not match the displayed image's natural resolution.

    A mask in this state must be discarded, never submitted.
    """

    def __init__(
        self,
        message: str,
        expected: Optional[tuple[int, int]] = None,
        actual: Optional[tuple[int, int]] = None
    ):
        super().__init__(message, error_code="GEOMETRY_SYNC_ERROR")
        self.expected = expected
        self.actual = actual
