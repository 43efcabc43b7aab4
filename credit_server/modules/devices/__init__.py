"""Device registry: credit-generating devices and their activity."""

from .exceptions import DeviceNotCreditGeneratingError, DeviceNotFoundError
from .models import Device, DeviceType
from .service import DeviceService

__all__ = [
    "Device",
    "DeviceType",
    "DeviceService",
    "DeviceNotFoundError",
    "DeviceNotCreditGeneratingError",
]
