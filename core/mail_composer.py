# core/mail_composer.py
"""
Builds the admin notification and user confirmation messages for a submission
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import formataddr
from typing import Any, Dict, Mapping, Optional, Tuple

from core.template_engine import TemplateEngine
from core.validator import Submission

logger = logging.getLogger(__name__)

ADMIN_TEMPLATE = 'admin_notification'
CONFIRMATION_TEMPLATE = 'user_confirmation'

ADMIN_SUBJECT_PREFIX = 'New Inquiry: '
CONFIRMATION_SUBJECT = 'We received your message about {subject}'

LINE_BREAKS = re.compile(r'[\r\n]+')

PRIORITY_HEADERS = {
    'X-Priority': '1',
    'X-MSMail-Priority': 'High',
}


def header_value(value: str) -> str:
    """Collapse CR/LF runs to a single space; header values must stay on one line"""
    return LINE_BREAKS.sub(' ', value)


@dataclass
class OutgoingMessage:
    """A fully composed email ready for the mail sender"""
    sender: Tuple[str, str]
    recipient: str
    subject: str
    text: str
    html: str
    reply_to: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def from_header(self) -> str:
        return formataddr(self.sender)


class MailComposer:
    """
    Composes outgoing messages from a sanitized Submission

    The HTML bodies come from the template engine; plain-text bodies are
    fixed strings.
    """

    def __init__(self, config: Mapping[str, Any], template_engine: TemplateEngine):
        self.sender_address = config['EMAIL_USERNAME']
        self.admin_email = config['ADMIN_EMAIL']
        self.sender_name = config.get('MAIL_SENDER_NAME', 'Website Contact')
        self.company_name = config.get('COMPANY_NAME', 'Your Company')
        self.send_confirmation = config.get('SEND_CONFIRMATION', True)
        self.template_engine = template_engine

    def wants_confirmation(self, submission: Submission) -> bool:
        """Confirmation goes out only when the submitter is not the admin"""
        if not self.send_confirmation:
            return False
        return submission.to.strip().lower() != self.admin_email.strip().lower()

    def compose_admin_notification(self, submission: Submission) -> OutgoingMessage:
        html = self.template_engine.render(ADMIN_TEMPLATE, {
            'subject': submission.subject,
            'name': submission.name,
            'email': submission.to,
            'message': submission.message,
            'phone': submission.phone,
            'year': datetime.now().year,
            'companyName': self.company_name,
        })

        return OutgoingMessage(
            sender=(self.sender_name, self.sender_address),
            recipient=self.admin_email,
            subject=header_value(f"{ADMIN_SUBJECT_PREFIX}{submission.subject}"),
            text=self._admin_text(submission),
            html=html,
            reply_to=formataddr((header_value(submission.name), header_value(submission.to))),
            headers=dict(PRIORITY_HEADERS),
        )

    def compose_user_confirmation(self, submission: Submission) -> OutgoingMessage:
        html = self.template_engine.render(CONFIRMATION_TEMPLATE, {
            'name': submission.name,
            'subject': submission.subject,
            'year': datetime.now().year,
            'companyName': self.company_name,
        })

        text = (f"Dear {submission.name},\n\n"
                f"Thank you for your message. We'll get back to you soon.\n\n"
                f"Best regards,\n{self.company_name} Team")

        return OutgoingMessage(
            sender=(self.company_name, self.sender_address),
            recipient=header_value(submission.to),
            subject=header_value(CONFIRMATION_SUBJECT.format(subject=submission.subject)),
            text=text,
            html=html,
            headers=dict(PRIORITY_HEADERS),
        )

    @staticmethod
    def _admin_text(submission: Submission) -> str:
        text = f"New message from {submission.name} ({submission.to})\n\n"
        text += f"Subject: {submission.subject}\n\n"
        if submission.phone:
            text += f"Phone: {submission.phone}\n\n"
        text += f"{submission.message}\n\n"
        text += "---\nThis message was sent via your website contact form"
        return text
