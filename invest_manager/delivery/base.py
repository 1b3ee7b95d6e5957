from abc import ABC, abstractmethod


class BaseNotifier(ABC):
    """A delivery channel for a single, pre-configured recipient.

    ``send`` delivers one payload no longer than ``max_length`` and raises
    ``DeliveryError`` when the channel rejects it.
    """

    max_length: int = 4096

    @abstractmethod
    async def send(self, text: str, emphasis: bool = False) -> None: ...
