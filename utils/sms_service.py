"""Notification sink for one-time passcodes."""
import logging
from abc import ABC, abstractmethod

from utils.errors import ExternalServiceUnavailable


class SmsDeliveryError(ExternalServiceUnavailable):
    """Raised when an SMS could not be handed to the provider."""


def mask_phone(value: str | None) -> str:
    if not value:
        return ""
    digits = str(value)
    if len(digits) <= 4:
        return "*" * len(digits)
    return f"{'*' * (len(digits) - 4)}{digits[-4:]}"


class SmsSink(ABC):
    @abstractmethod
    def send(self, phone: str, message: str) -> None:
        """Deliver `message` or raise SmsDeliveryError."""


class LoggingSmsSink(SmsSink):
    """Writes messages to the log instead of a provider (development posture)."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def send(self, phone: str, message: str) -> None:
        self.logger.info("SMS (mock) to %s: %s", mask_phone(phone), message)
