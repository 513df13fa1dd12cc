from app.services.messaging.base import MessagingPlatform
from app.services.messaging.telegram import TelegramClient

PLATFORM_REGISTRY = {
    "telegram": TelegramClient,
}


def get_messaging_platform(name: str = "telegram") -> MessagingPlatform:
    """Factory: return a client for the named messaging platform."""
    platform_cls = PLATFORM_REGISTRY.get(name)
    if platform_cls is None:
        raise ValueError(f"Unknown messaging platform: {name}")
    return platform_cls()


__all__ = [
    "MessagingPlatform",
    "TelegramClient",
    "get_messaging_platform",
]
