"""Email channel: sender and SMTP transport."""

from notification_dispatch.channels.email.sender import EmailSender, is_html_body
from notification_dispatch.channels.email.transport import SmtpEmailTransport

__all__ = ["EmailSender", "SmtpEmailTransport", "is_html_body"]
