"""Abstract notification sink interface."""

from abc import ABC, abstractmethod

from salesbot.models import SaleRecord


class NotificationSink(ABC):
    """Delivers sale records to a messaging channel."""

    @abstractmethod
    async def connect(self) -> None:
        """Verify credentials and destination before the first sale.

        Raises:
            FatalConfigError: If the destination rejects the credentials.
        """
        ...

    @abstractmethod
    async def send(self, record: SaleRecord) -> None:
        """Render and deliver one sale.

        Raises:
            NotificationError: If delivery fails.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        ...
