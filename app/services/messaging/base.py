from abc import ABC, abstractmethod
from typing import Optional


class MessagingPlatform(ABC):
    """External chat platform used as an independent channel to confirm phone numbers."""

    @abstractmethod
    def send_message(self, handle: str, text: str) -> bool:
        """Send a text message to the identity. Returns True if it was accepted."""
        ...

    @abstractmethod
    def get_verified_phone_number(self, handle: str) -> Optional[str]:
        """Phone number the platform has verified for the identity, or None."""
        ...
