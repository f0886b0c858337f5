"""Channel router mapping channels to their senders.

The router is a plain registry: one sender per channel, looked up on every
dispatch. Unknown channels raise instead of silently succeeding.
"""

from __future__ import annotations

from notification_dispatch.core.exceptions import UnsupportedChannelError
from notification_dispatch.types import Channel, ChannelSender

__all__ = ["ChannelRouter"]


class ChannelRouter:
    """Registry of channel senders keyed by ``Channel``."""

    def __init__(self, senders: dict[Channel, ChannelSender] | None = None) -> None:
        self._senders: dict[Channel, ChannelSender] = {}
        for channel, sender in (senders or {}).items():
            self.register(channel, sender)

    def register(self, channel: Channel, sender: ChannelSender, *, replace: bool = False) -> None:
        """Register a sender for a channel.

        Raises:
            ValueError: If the channel already has a sender and ``replace``
                is False
        """
        if channel in self._senders and not replace:
            msg = f"Channel {channel.value!r} already has a sender"
            raise ValueError(msg)
        self._senders[channel] = sender

    def unregister(self, channel: Channel) -> None:
        """Remove the sender for a channel if one is registered."""
        _ = self._senders.pop(channel, None)

    def resolve(self, channel: Channel) -> ChannelSender:
        """Return the sender for a channel.

        Raises:
            UnsupportedChannelError: If no sender is registered
        """
        sender = self._senders.get(channel)
        if sender is None:
            name = channel.value if isinstance(channel, Channel) else repr(channel)
            msg = f"Channel {name} is not supported"
            raise UnsupportedChannelError(msg)
        return sender

    def __contains__(self, channel: object) -> bool:
        return channel in self._senders

    def get_channels(self) -> tuple[Channel, ...]:
        """Return registered channels sorted by name."""
        return tuple(sorted(self._senders, key=lambda channel: channel.value))
