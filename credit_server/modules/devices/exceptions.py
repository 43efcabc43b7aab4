"""Device domain specific exceptions."""

from credit_server.core.exceptions import NotFoundError, ValidationError


class DeviceNotFoundError(NotFoundError):
    """Raised when the requested device could not be found."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"device {device_id} not found", device_id=device_id)
        self.device_id = device_id


class DeviceNotCreditGeneratingError(ValidationError):
    """Raised when accrual or minting is requested for an EMITTER device."""
