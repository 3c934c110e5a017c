# services/notifications.py
"""
Blog notification orchestration

Resolves recipients, renders the blog email and routes it through the
dispatch gateway, either directly or via the queue. Also processes the
queue's delivery callbacks.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.exceptions import (
    BlogNotFound, DeliveryError, InvalidRecipient, InvalidRequest,
    NoRecipientsError, QueuePublishError,
)
from core.models import BlogPost, DeliveryReport, EmailMessage
from core.security_manager import DeliveryLedger
from core.template_engine import BlogEmailRenderer, sanitize_content
from services.data_store import SupabaseDirectory
from services.dispatch import DispatchGateway, normalize_recipient

logger = logging.getLogger(__name__)

MODE_DIRECT = 'direct'
MODE_QUEUE = 'queue'
DELIVERY_MODES = (MODE_DIRECT, MODE_QUEUE)

WEBHOOK_PATH = '/api/qstash-send-email'

TEST_EMAIL_SUBJECT = "Test Email from CodeSapiens"
TEST_EMAIL_HTML = """\
<div style="font-family: Arial, sans-serif; padding: 20px;">
  <h2>🎉 Email Configuration Working!</h2>
  <p>This is a test email from the CodeSapiens Blog Email System.</p>
  <p>If you received this, the email system is configured correctly.</p>
</div>
"""


class BlogNotifier:
    """
    Sends blog notifications to members
    """

    def __init__(self, gateway: DispatchGateway, directory: SupabaseDirectory,
                 renderer: BlogEmailRenderer, ledger: DeliveryLedger,
                 public_base_url: Optional[str] = None, sanitize: bool = True):
        self.gateway = gateway
        self.directory = directory
        self.renderer = renderer
        self.ledger = ledger
        self.public_base_url = public_base_url.rstrip('/') if public_base_url else None
        self.sanitize = sanitize

    @property
    def webhook_url(self) -> Optional[str]:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url}{WEBHOOK_PATH}"

    def resolve_mode(self, mode: Optional[str]) -> str:
        """Explicit mode wins; otherwise queue when a public callback URL exists"""
        if mode is None:
            return MODE_QUEUE if self.public_base_url else MODE_DIRECT
        if mode not in DELIVERY_MODES:
            raise InvalidRequest(f"Unknown delivery mode: {mode}")
        if mode == MODE_QUEUE and not self.public_base_url:
            raise InvalidRequest("Queued delivery requires a public base URL")
        return mode

    def load_post(self, blog_data: Optional[Dict[str, Any]],
                  require_content: bool = True) -> BlogPost:
        post = BlogPost.from_dict(blog_data, require_content=require_content)
        if self.sanitize:
            post = replace(post, content=sanitize_content(post.content))
        return post

    def notify(self, emails: Any, blog_data: Optional[Dict[str, Any]],
               mode: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Notify an explicit list of recipients about a blog post

        Returns:
            JSON-ready summary of the send or the queued jobs
        """
        if not emails or not isinstance(emails, list):
            raise InvalidRecipient("No recipients provided")

        post = self.load_post(blog_data)
        return self._dispatch(emails, post, self.resolve_mode(mode), now)

    def notify_all_students(self, blog_data: Optional[Dict[str, Any]],
                            mode: Optional[str] = None,
                            now: Optional[datetime] = None) -> Dict[str, Any]:
        post = self.load_post(blog_data)
        mode = self.resolve_mode(mode)
        students = self.directory.student_email_rows()
        if not students:
            raise NoRecipientsError("No students found")

        # totalStudents counts every student row, including those without an address
        emails = [row['email'] for row in students if row.get('email')]
        summary = self._dispatch(emails, post, mode, now)
        summary['totalStudents'] = len(students)
        return summary

    def _dispatch(self, emails: List[Any], post: BlogPost, mode: str,
                  now: Optional[datetime]) -> Dict[str, Any]:
        if mode == MODE_DIRECT:
            report = self.send_to_all(emails, post, now=now)
            return {
                'success': True,
                'mode': mode,
                'message': f"Email sent to {report.sent} of {report.total} recipients (direct mode)",
                'successCount': report.sent,
                'failedCount': report.failed_count,
                'failedEmails': report.failed,
            }

        queued = self.enqueue_all(emails, post)
        return {
            'success': True,
            'mode': mode,
            'message': f"Queued {queued} emails for delivery",
            'queuedCount': queued,
        }

    def send_to_all(self, emails: List[Any], post: BlogPost,
                    now: Optional[datetime] = None) -> DeliveryReport:
        """Render once and send sequentially; one failure does not stop the rest"""
        template = self.renderer.build_message(post, recipient='', now=now)
        report = DeliveryReport(total=len(emails))

        for email in emails:
            try:
                self.gateway.send_direct(replace(template, recipient=email))
                report.sent += 1
            except DeliveryError as e:
                logger.error(f"Failed to send to {email}: {e}")
                report.failed.append(email)

        logger.info(f"Direct send finished: {report.sent} sent, {report.failed_count} failed")
        return report

    def enqueue_all(self, emails: List[Any], post: BlogPost) -> int:
        """
        Publish one delivery job per recipient

        Raises:
            InvalidRecipient: any address fails the syntax check
            QueuePublishError: the queue rejected a publish
        """
        try:
            recipients = [normalize_recipient(email) for email in emails]
        except DeliveryError as e:
            raise InvalidRecipient(str(e)) from e

        blog_payload = post.to_queue_payload()
        target_url = self.webhook_url
        queued = 0
        for recipient in recipients:
            try:
                self.gateway.enqueue({'email': recipient, 'blog': blog_payload}, target_url)
            except QueuePublishError:
                logger.error(f"Queue publish stopped after {queued} of {len(recipients)} jobs")
                raise
            queued += 1

        logger.info(f"Queued {queued} blog emails for '{post.title}'")
        return queued

    def send_test_email(self, email: Optional[str]) -> Dict[str, Any]:
        if not email:
            raise InvalidRecipient("Email is required")

        self.gateway.send_direct(EmailMessage(
            recipient=email,
            subject=TEST_EMAIL_SUBJECT,
            html_body=TEST_EMAIL_HTML,
        ))
        return {'success': True, 'message': f"Test email sent to {email}"}

    def handle_delivery(self, payload: Any, message_id: Optional[str] = None,
                        now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Deliver one queued notification

        Redelivered callbacks carrying an already-delivered message id are
        acknowledged without sending again. A failed send releases the claim
        and re-raises so the queue retries.
        """
        if not isinstance(payload, dict) or not payload.get('email'):
            raise InvalidRecipient("Missing email")

        email = payload['email']
        blog_data = payload.get('blog')
        if not blog_data and payload.get('blogId') is not None:
            blog_data = self.directory.get_blog(payload['blogId'])
            if not blog_data:
                raise BlogNotFound("Blog not found")

        post = self.load_post(blog_data, require_content=False)

        if not self.ledger.claim(message_id):
            logger.info(f"Skipping duplicate delivery {message_id} to {email}")
            return {'success': True, 'duplicate': True,
                    'message': f"Email already sent to {email}"}

        try:
            self.gateway.send_direct(self.renderer.build_message(post, email, now=now))
        except Exception:
            self.ledger.release(message_id)
            raise

        return {'success': True, 'message': f"Email sent to {email}"}
