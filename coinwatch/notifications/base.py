"""Push transport interface."""

from abc import ABC, abstractmethod

from coinwatch.models import NotificationPayload


class PushTransport(ABC):
    """Delivers one push message to one device."""

    @abstractmethod
    def initialize(self) -> None:
        """Prepare credentials/clients. Called once before any send."""
        pass

    @abstractmethod
    async def send(self, device_token: str, payload: NotificationPayload) -> str:
        """Send a message.

        Returns:
            The provider's message id.

        Raises:
            PushTransportError: If delivery fails.
        """
        pass
