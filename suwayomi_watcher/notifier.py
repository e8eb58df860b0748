"""
Protocol definition for notification backends.

Defines the interface the subscriber uses to deliver rendered messages.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    """
    Protocol defining the interface for notification backends.

    The @runtime_checkable decorator allows using isinstance() checks
    against this protocol for structural typing validation.
    """

    async def test_connection(self) -> bool:
        """
        Test the connection to the notification backend.

        Returns
        -------
        bool
            True if the connection is working and messages can be sent.
        """
        ...

    async def deliver(self, caption: str, image: bytes | None = None) -> bool:
        """
        Send one notification.

        Parameters
        ----------
        caption : str
            MarkdownV2 message text.
        image : bytes | None
            Optional image to send the caption with.

        Returns
        -------
        bool
            True if the notification was sent successfully.
        """
        ...

    async def close(self) -> None:
        """Close the notifier and release any resources."""
        ...
