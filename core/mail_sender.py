# core/mail_sender.py
"""
SMTP mail transport for the contact relay
Delivers composed messages through aiosmtplib and reports each attempt as a
SendResult. No retries: a failed send is reported once.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Any, Dict, Mapping, Optional

import aiosmtplib

from core.mail_composer import OutgoingMessage

logger = logging.getLogger(__name__)

X_MAILER = 'Contact Relay 1.0'


@dataclass
class SendResult:
    """Result of a single send attempt"""
    success: bool
    recipient: str
    smtp_code: Optional[str] = None
    smtp_message: Optional[str] = None
    error: Optional[str] = None
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def build_email_message(message: OutgoingMessage) -> EmailMessage:
    """
    Convert an OutgoingMessage into a multipart/alternative EmailMessage
    """
    msg = EmailMessage()
    msg['Subject'] = message.subject
    msg['From'] = message.from_header
    msg['To'] = message.recipient
    msg['Date'] = formatdate(localtime=True)

    domain = message.sender[1].rpartition('@')[2] or 'localhost'
    msg['Message-ID'] = make_msgid(domain=domain)

    if message.reply_to:
        msg['Reply-To'] = message.reply_to

    msg['X-Mailer'] = X_MAILER
    for name, value in message.headers.items():
        msg[name] = value

    msg.set_content(message.text)
    if message.html:
        msg.add_alternative(message.html, subtype='html')

    return msg


class SMTPMailSender:
    """
    Process-wide SMTP sender

    Holds transport settings only; every send opens its own SMTP session so
    concurrent requests never share a connection.
    """

    def __init__(self,
                 host: str,
                 port: int,
                 username: str,
                 password: str,
                 use_tls: bool = True,
                 start_tls: bool = False,
                 timeout: float = 30.0,
                 validate_certs: bool = True):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.start_tls = start_tls
        self.timeout = timeout
        self.validate_certs = validate_certs

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'SMTPMailSender':
        return cls(
            host=config['SMTP_HOST'],
            port=config['SMTP_PORT'],
            username=config['EMAIL_USERNAME'],
            password=config['EMAIL_PASSWORD'],
            use_tls=config.get('SMTP_USE_TLS', config['SMTP_PORT'] == 465),
            start_tls=config.get('SMTP_START_TLS', config['SMTP_PORT'] == 587),
            timeout=config.get('SMTP_TIMEOUT', 30.0),
        )

    def _client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            timeout=self.timeout,
            use_tls=self.use_tls,  # Implicit TLS for port 465
            start_tls=self.start_tls,  # STARTTLS for port 587
            validate_certs=self.validate_certs
        )

    def send(self, message: OutgoingMessage) -> SendResult:
        """
        Deliver a message, blocking until the SMTP exchange completes

        Returns:
            SendResult describing the outcome; transport errors are reported
            through the result rather than raised
        """
        logger.debug(f"Sending '{message.subject}' to {message.recipient} via {self.host}:{self.port}")

        try:
            msg = build_email_message(message)
            response = asyncio.run(self._async_send(msg))
        except ValueError as e:
            # Raised by the email package for malformed header values
            logger.error(f"Could not build message for {message.recipient}: {str(e)}")
            return SendResult(success=False, recipient=message.recipient, error=str(e))
        except aiosmtplib.SMTPResponseException as e:
            logger.error(f"SMTP rejected message to {message.recipient}: {e.code} {e.message}")
            return SendResult(
                success=False,
                recipient=message.recipient,
                smtp_code=str(e.code),
                smtp_message=e.message,
                error=str(e)
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Email sending error for {message.recipient}: {str(e)}")
            return SendResult(success=False, recipient=message.recipient, error=str(e))

        logger.info(f"Email delivered to {message.recipient}: {response}")
        return SendResult(
            success=True,
            recipient=message.recipient,
            smtp_code='250',
            smtp_message=response
        )

    async def _async_send(self, msg: EmailMessage) -> str:
        smtp = self._client()
        await smtp.connect()
        try:
            if self.username and self.password:
                await smtp.login(self.username, self.password)

            errors, response = await smtp.send_message(msg)
            if errors:
                logger.warning(f"Some recipients were refused: {errors}")
            return response
        finally:
            if smtp.is_connected:
                await smtp.quit()

    def verify(self) -> bool:
        """
        Check that the transport accepts a connection and the credentials

        Returns:
            True when connect and login succeed
        """
        try:
            asyncio.run(self._async_verify())
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Error with mail transport {self.host}:{self.port}: {str(e)}")
            return False

        logger.info("Mail transport is ready to send emails")
        return True

    async def _async_verify(self) -> None:
        smtp = self._client()
        await smtp.connect()
        try:
            if self.username and self.password:
                await smtp.login(self.username, self.password)
            await smtp.noop()
        finally:
            if smtp.is_connected:
                await smtp.quit()

    def describe(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'port': self.port,
            'tls': 'implicit' if self.use_tls else ('starttls' if self.start_tls else 'none'),
        }
