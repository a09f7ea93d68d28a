"""MessageSink interface for outbound message delivery.

The pipeline pushes every message it produces through a sink; the host
decides how it reaches the channel.
"""

from abc import ABC, abstractmethod

from graphdialog.core.types import OutboundMessage


class MessageSink(ABC):
    """Interface for delivering messages to the user."""

    @abstractmethod
    async def send(self, message: OutboundMessage) -> None:
        """Send a message to the user immediately."""
        ...


class BufferedMessageSink(MessageSink):
    """Buffers messages for testing or batch delivery."""

    def __init__(self) -> None:
        self.messages: list[OutboundMessage] = []

    async def send(self, message: OutboundMessage) -> None:
        """Append message to buffer."""
        self.messages.append(message)

    @property
    def texts(self) -> list[str]:
        return [m.text for m in self.messages if m.text is not None]

    def clear(self) -> None:
        """Clear the message buffer."""
        self.messages.clear()
