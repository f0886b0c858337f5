"""Channel senders and router wiring from configuration."""

from __future__ import annotations

from notification_dispatch.channels.email import EmailSender, SmtpEmailTransport
from notification_dispatch.channels.simulated import SimulatedSender
from notification_dispatch.core.config import MainConfig
from notification_dispatch.core.router import ChannelRouter
from notification_dispatch.types import Channel, EmailTransport
from notification_dispatch.utils.logging import get_logger

__all__ = ["EmailSender", "SimulatedSender", "SmtpEmailTransport", "build_router"]

logger = get_logger(__name__)


def build_router(config: MainConfig, *, email_transport: EmailTransport | None = None) -> ChannelRouter:
    """Register a sender for every enabled channel.

    In dry-run mode every channel gets a ``SimulatedSender``. Otherwise email
    uses ``email_transport`` when given, or an ``SmtpEmailTransport`` built
    from the ``email`` section; with neither, email stays unregistered.
    """
    router = ChannelRouter()
    confirm = config.channels.confirm_simulated_delivery

    for channel in config.channels.enabled:
        if config.application.dry_run:
            router.register(channel, SimulatedSender(channel, confirm_delivery=confirm))
            continue

        if channel is Channel.EMAIL:
            transport = email_transport
            if transport is None and config.email is not None:
                transport = SmtpEmailTransport(config.email)
            if transport is None:
                logger.warning("Email channel enabled without an email section; email stays unregistered")
                continue
            router.register(channel, EmailSender(transport))
            continue

        router.register(channel, SimulatedSender(channel, confirm_delivery=confirm))

    logger.info(
        "Channel router ready",
        extra={
            "channels": [channel.value for channel in router.get_channels()],
            "dry_run": config.application.dry_run,
        },
    )
    return router
