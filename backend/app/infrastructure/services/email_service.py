"""
Email Notification Service

Transactional emails for subscription events, sent through Postmark.

Sending is fire-and-forget: failures are logged and reported as False,
never raised, so a notification problem can never undo a billing change.
"""

import logging
from enum import Enum
from typing import Dict, Optional, Tuple

from postmarker.core import PostmarkClient

from app.config.settings import get_settings
from app.domain.plans import PlanTier, get_plan
from app.domain.subscription import User


logger = logging.getLogger(__name__)


class NotificationTemplate(str, Enum):
    WELCOME = "subscription_welcome"
    PLAN_CHANGED = "subscription_plan_changed"
    CANCELED = "subscription_canceled"


# template -> (subject, body); body is formatted with plan_name and app_url
_TEMPLATES: Dict[NotificationTemplate, Tuple[str, str]] = {
    NotificationTemplate.WELCOME: (
        "Welcome to CV Transformer {plan_name}",
        "Your {plan_name} subscription is active. "
        "Start transforming your CV at {app_url}.",
    ),
    NotificationTemplate.PLAN_CHANGED: (
        "Your CV Transformer plan has changed",
        "You are now on the {plan_name} plan. "
        "Your new conversion limit applies immediately.",
    ),
    NotificationTemplate.CANCELED: (
        "Your CV Transformer subscription has ended",
        "Your subscription has been cancelled. "
        "You can subscribe again at any time from {app_url}.",
    ),
}


class EmailService:
    """Postmark-backed sender. Without a server token emails are only logged."""

    def __init__(self, client: Optional[PostmarkClient] = None):
        settings = get_settings()
        self._sender = settings.email_sender
        self._app_url = settings.app_url

        if client is not None:
            self.client = client
        elif not settings.postmark_server_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=settings.postmark_server_token)
            logger.info("Postmark email client initialized")

    def render(
        self,
        template: NotificationTemplate,
        tier: Optional[PlanTier] = None,
    ) -> Tuple[str, str, str]:
        """Return (subject, text body, html body)."""
        plan_name = get_plan(tier).name if tier else "CV Transformer"
        subject, body = _TEMPLATES[template]
        values = {"plan_name": plan_name, "app_url": self._app_url}

        text_body = body.format(**values)
        html_body = f"<p>{text_body}</p>"
        return subject.format(**values), text_body, html_body

    async def send(
        self,
        user: User,
        template: NotificationTemplate,
        tier: Optional[PlanTier] = None,
    ) -> bool:
        """
        Send a subscription notification.

        Returns:
            True if Postmark accepted the message (or it was logged in dev mode)
        """
        subject, text_body, html_body = self.render(template, tier)

        if self.client is None:
            logger.info(f"[DEV MODE] Email '{template.value}' logged (not sent) to {user.email}")
            return True

        try:
            response = self.client.emails.send(
                From=self._sender,
                To=user.email,
                Subject=subject,
                HtmlBody=html_body,
                TextBody=text_body,
                Tag=template.value,
            )
            logger.info(f"Email '{template.value}' sent to {user.email}: {response['MessageID']}")
            return True

        except Exception as e:
            logger.error(f"Failed to send '{template.value}' email to {user.email}: {e}")
            return False


_email_service_instance: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get or create email service singleton."""
    global _email_service_instance

    if _email_service_instance is None:
        _email_service_instance = EmailService()

    return _email_service_instance
