"""Message rendering for channel clients using Jinja2.

One template per channel part (SMS text, email subject, email HTML and
plain-text bodies) branches on the notification type. Templates are
rendered with StrictUndefined, so a required value missing from the
template data raises NotificationTemplateError instead of producing a
message with a hole in it.
"""

import logging
import re
from typing import Any, Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from civic_notify.domain.models import NotificationPayload, NotificationType

from .models import NotificationTemplateError

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def build_message_context(
    notification_type: NotificationType, payload: NotificationPayload
) -> Dict[str, Any]:
    """Build the template context for one notification.

    Template data keys are normalized to snake_case so callers may pass
    either ``timelineUrl`` or ``timeline_url``. Values supplied by the
    recipient fields always win over template data.
    """
    context: Dict[str, Any] = {}
    for key, value in (payload.template_data or {}).items():
        if value is None:
            continue
        context[_snake_case(str(key))] = value

    context["type"] = notification_type.value
    context["recipient_name"] = payload.recipient_name
    return context


class MessageRenderer:
    """Renders SMS and email content from the message_templates package directory."""

    def __init__(
        self,
        template_dir: str = "message_templates",
        sms_template: str = "sms_message.txt.j2",
        subject_template: str = "email_subject.j2",
        html_template: str = "email_body.html.j2",
        text_template: str = "email_body.txt.j2",
    ):
        self.sms_template_name = sms_template
        self.subject_template_name = subject_template
        self.html_template_name = html_template
        self.text_template_name = text_template

        self.env = Environment(
            loader=PackageLoader("civic_notify.channels", template_dir),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.html_env = self.env.overlay(autoescape=True)

        logger.debug(f"Initialized MessageRenderer with templates from {template_dir}")

    def render_sms(self, notification_type: NotificationType, payload: NotificationPayload) -> str:
        """Render the SMS body for a notification.

        Raises:
            NotificationTemplateError: If rendering fails
        """
        context = build_message_context(notification_type, payload)
        return self._render(self.env, self.sms_template_name, context).strip()

    def render_email(
        self, notification_type: NotificationType, payload: NotificationPayload
    ) -> Dict[str, str]:
        """Render subject, HTML body and plain-text body for an email.

        Returns:
            Dictionary with ``subject`` (single line), ``html_body`` and ``text_body``

        Raises:
            NotificationTemplateError: If rendering fails
        """
        context = build_message_context(notification_type, payload)
        subject = self._render(self.env, self.subject_template_name, context)
        return {
            "subject": " ".join(subject.split()),
            "html_body": self._render(self.html_env, self.html_template_name, context),
            "text_body": self._render(self.env, self.text_template_name, context).strip(),
        }

    def _render(self, env: Environment, template_name: str, context: Dict[str, Any]) -> str:
        try:
            return env.get_template(template_name).render(context)
        except TemplateError as e:
            error_msg = (
                f"Template {template_name} failed for {context.get('type')}: {e}"
            )
            logger.error(error_msg)
            raise NotificationTemplateError(error_msg) from e

