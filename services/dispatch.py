# services/dispatch.py
"""
Dispatch Gateway for rendered blog notification emails

Delivery paths:
- Direct: authenticated SMTP session via aiosmtplib, no internal retry
- Queued: JSON publish to Upstash QStash, which owns retry and backoff and
  calls back into the webhook endpoint with a signed request
"""

import asyncio
import uuid
import logging
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import Any, Dict, Optional

import aiosmtplib
from email_validator import validate_email, EmailNotValidError
from qstash import QStash

from core.exceptions import DeliveryError, QueuePublishError
from core.models import DeliveryResult, DispatchJob, EmailMessage
from core.security_manager import SignatureVerifier

logger = logging.getLogger(__name__)


def normalize_recipient(address: Any) -> str:
    """
    Syntax-check a recipient address

    Raises:
        DeliveryError: address is not a valid mailbox
    """
    if not isinstance(address, str) or not address.strip():
        raise DeliveryError("Recipient address is empty", recipient=str(address), reason='recipient')
    try:
        return validate_email(address.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise DeliveryError(f"Invalid recipient address: {e}", recipient=address,
                            reason='recipient') from e


class MailTransport:
    """
    Thin SMTP client: one authenticated session per message
    """

    def __init__(self, host: str, port: int, username: Optional[str], password: Optional[str],
                 from_address: Optional[str], from_name: str = 'CodeSapiens Blog',
                 timeout: float = 30, validate_certs: bool = True):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address or username
        self.from_name = from_name
        self.timeout = timeout
        self.validate_certs = validate_certs

    def build_mime(self, message: EmailMessage) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = message.subject
        msg['From'] = formataddr((self.from_name, self.from_address))
        msg['To'] = message.recipient
        msg['Date'] = formatdate(localtime=True)
        domain = (self.from_address or 'localhost').rpartition('@')[2] or 'localhost'
        msg['Message-ID'] = f"<{uuid.uuid4()}@{domain}>"

        if message.text_body:
            msg.attach(MIMEText(message.text_body, 'plain', 'utf-8'))
        msg.attach(MIMEText(message.html_body, 'html', 'utf-8'))
        return msg

    async def _async_send(self, msg: MIMEMultipart):
        smtp = aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            timeout=self.timeout,
            use_tls=self.port == 465,
            start_tls=True if self.port == 587 else None,
            validate_certs=self.validate_certs,
        )
        await smtp.connect()
        try:
            if self.username and self.password:
                await smtp.login(self.username, self.password)
            return await smtp.send_message(msg)
        finally:
            if smtp.is_connected:
                try:
                    await smtp.quit()
                except aiosmtplib.SMTPException as e:
                    logger.debug(f"SMTP quit failed: {e}")

    def send(self, message: EmailMessage) -> DeliveryResult:
        """
        Submit a message to the SMTP provider

        Raises:
            DeliveryError: authentication, recipient or network failure
        """
        if not self.from_address:
            raise DeliveryError("Mail sender address is not configured",
                                recipient=message.recipient, reason='configuration')

        msg = self.build_mime(message)
        recipient = message.recipient

        try:
            errors, response = asyncio.run(self._async_send(msg))
        except aiosmtplib.SMTPAuthenticationError as e:
            raise DeliveryError(f"SMTP authentication failed: {e.message}", recipient=recipient,
                                smtp_code=e.code, reason='authentication') from e
        except aiosmtplib.SMTPRecipientsRefused as e:
            raise DeliveryError(f"Recipient refused: {recipient}", recipient=recipient,
                                reason='recipient') from e
        except aiosmtplib.SMTPResponseException as e:
            raise DeliveryError(f"SMTP error {e.code}: {e.message}", recipient=recipient,
                                smtp_code=e.code, reason='transport') from e
        except (aiosmtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP connection failed: {e}", recipient=recipient,
                                reason='network') from e

        if errors:
            raise DeliveryError(f"Recipient refused: {recipient}", recipient=recipient,
                                reason='recipient')

        return DeliveryResult(
            recipient=recipient,
            message_id=msg['Message-ID'],
            smtp_code=250,
            smtp_message=response,
            sent_at=datetime.now(timezone.utc),
        )


class DispatchGateway:
    """
    Sends rendered messages directly or hands them to the queue

    All collaborators are injected so tests can substitute doubles.
    """

    def __init__(self, transport: MailTransport, queue_client: Optional[QStash],
                 verifier: SignatureVerifier, retries: int = 3):
        self.transport = transport
        self.queue_client = queue_client
        self.verifier = verifier
        self.retries = retries

    def send_direct(self, message: EmailMessage) -> DeliveryResult:
        recipient = normalize_recipient(message.recipient)
        if recipient != message.recipient:
            message = EmailMessage(recipient=recipient, subject=message.subject,
                                   html_body=message.html_body, text_body=message.text_body)

        result = self.transport.send(message)
        logger.info(f"Email sent to {recipient}")
        return result

    def enqueue(self, payload: Dict[str, Any], target_url: str) -> DispatchJob:
        """
        Publish a delivery job to the queue

        Raises:
            QueuePublishError: queue is not configured or rejected the publish
        """
        if self.queue_client is None:
            raise QueuePublishError("Queue client is not configured")

        try:
            response = self.queue_client.message.publish_json(
                url=target_url,
                body=payload,
                retries=self.retries,
            )
        except Exception as e:
            logger.error(f"Queue publish to {target_url} failed: {e}")
            raise QueuePublishError(f"Queue publish failed: {e}") from e

        return DispatchJob(
            target_url=target_url,
            payload=payload,
            retries=self.retries,
            message_id=getattr(response, 'message_id', None),
        )

    def verify_inbound_signature(self, raw_body: str, signature: Optional[str],
                                 url: Optional[str] = None) -> None:
        self.verifier.verify(raw_body, signature, url=url)


def build_gateway(config) -> DispatchGateway:
    """Wire the production gateway from a Config instance"""
    transport = MailTransport(
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        username=config.EMAIL_USER,
        password=config.EMAIL_PASS,
        from_address=config.MAIL_FROM_ADDRESS,
        from_name=config.MAIL_FROM_NAME,
        timeout=config.SMTP_TIMEOUT,
    )

    queue_client = None
    if config.QSTASH_TOKEN:
        queue_kwargs = {'base_url': config.QSTASH_URL} if config.QSTASH_URL else {}
        queue_client = QStash(config.QSTASH_TOKEN, **queue_kwargs)

    verifier = SignatureVerifier(
        config.QSTASH_CURRENT_SIGNING_KEY,
        config.QSTASH_NEXT_SIGNING_KEY,
        clock_tolerance=config.QSTASH_CLOCK_TOLERANCE,
    )

    return DispatchGateway(transport, queue_client, verifier, retries=config.QSTASH_RETRIES)
