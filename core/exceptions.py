# core/exceptions.py
"""
Exception hierarchy for the blog notification service
"""

from typing import Optional


class NotifierError(Exception):
    """Base exception for notification operations"""
    status_code = 500


class ConfigurationError(NotifierError):
    """Required configuration is missing or malformed"""
    pass


class InvalidRequest(NotifierError):
    """Request payload cannot be processed"""
    status_code = 400


class InvalidBlogPost(InvalidRequest):
    """Blog payload is missing required fields"""
    pass


class InvalidRecipient(InvalidRequest):
    """Recipient list or address is unusable"""
    pass


class NoRecipientsError(InvalidRequest):
    """No recipients could be resolved for a notification"""
    pass


class BlogNotFound(NotifierError):
    """Referenced blog post does not exist in the data store"""
    status_code = 404


class DeliveryError(NotifierError):
    """Mail transport refused or failed to submit a message"""
    status_code = 502

    def __init__(self, message: str, recipient: Optional[str] = None,
                 smtp_code: Optional[int] = None, reason: str = 'transport'):
        super().__init__(message)
        self.recipient = recipient
        self.smtp_code = smtp_code
        self.reason = reason


class QueuePublishError(NotifierError):
    """Message queue rejected a publish request"""
    status_code = 502


class DataStoreError(NotifierError):
    """Hosted data store query failed"""
    status_code = 502


class SignatureVerificationError(NotifierError):
    """Inbound callback signature did not validate"""
    status_code = 401
