"""
Email utilities for report notifications.
This module sends plain notification emails over SMTP.
"""
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from formplay.core.config import settings, EmailSettings
from formplay.core.exceptions import Unavailable
from formplay.core.logging import logger

APP_NAME = "FormPlay"


def subject_for_status(status: str, creator: str, receiver: str) -> str:
    """Subject line for a notification about a report reaching ``status``."""
    subjects = {
        "pending_review": f"New TPS Report from {creator}",
        "pending_approval": f"TPS Report Reviewed by {receiver}",
        "completed": "TPS Report Completed",
        "aborted": "TPS Report Closed",
    }
    return subjects.get(status, "TPS Report Update")


def body_for_status(status: str, creator: str, receiver: str) -> str:
    """Plain text body for a notification about a report reaching ``status``."""
    bodies = {
        "pending_review": (
            f"{creator} has created a new TPS report for you to review. "
            f"Please log in to {APP_NAME} to check it out!"
        ),
        "pending_approval": (
            f"{receiver} has reviewed your TPS report. "
            f"Please log in to {APP_NAME} to approve it."
        ),
        "completed": "The TPS report has been approved! Time to review TPS reports together.",
        "aborted": (
            "This TPS report won't go ahead this time, and that's completely okay. "
            f"You can start a fresh one from it whenever you like in {APP_NAME}."
        ),
    }
    return bodies.get(status, "There has been an update to your TPS report.")


class EmailService:
    """Service for sending notification emails."""

    def __init__(self, config: Optional[EmailSettings] = None):
        self.config = config or settings.email

    def send(self, to: str, subject: str, body: str) -> bool:
        """
        Send a notification email.

        Args:
            to: Recipient email address
            subject: Subject line
            body: Plain text body

        Returns:
            True if the email was handed to the SMTP server, False if email is disabled

        Raises:
            Unavailable: If the SMTP exchange fails
        """
        if not self.config.enabled:
            logger.debug(f"Email notifications disabled, not sending '{subject}' to {to}")
            return False

        message = MIMEMultipart()
        message["From"] = self.config.from_email
        message["To"] = to
        message["Subject"] = subject
        message.attach(MIMEText(body, "plain"))

        try:
            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=self.config.timeout) as server:
                if self.config.use_tls:
                    server.starttls()
                if self.config.username and self.config.password_str:
                    server.login(self.config.username, self.config.password_str)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email '{subject}' to {to}: {e}")
            raise Unavailable(f"Email to {to} could not be delivered") from e

        logger.info(f"Email '{subject}' sent to {to}")
        return True
