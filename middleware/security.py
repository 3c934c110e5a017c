# middleware/security.py
"""
Security Middleware for Request Processing
"""

from functools import wraps
import logging

from flask import current_app, jsonify, request

from core.exceptions import SignatureVerificationError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'Upstash-Signature'


def security_headers(response):
    """Add security headers to all responses"""
    for header, value in current_app.config.get('SECURITY_HEADERS', {}).items():
        response.headers.setdefault(header, value)
    return response


def require_queue_signature(f):
    """
    Decorator rejecting queue callbacks whose signature does not validate

    The raw request body is verified before any JSON parsing so the handler
    only ever sees trusted payloads.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        notifier = current_app.extensions['notifier']
        raw_body = request.get_data(cache=True, as_text=True)
        signature = request.headers.get(SIGNATURE_HEADER)

        try:
            notifier.gateway.verify_inbound_signature(raw_body, signature, url=notifier.webhook_url)
        except SignatureVerificationError as e:
            logger.warning(f"Rejected queue callback from {request.remote_addr}: {e}")
            return jsonify({'success': False, 'error': str(e)}), 401

        return f(*args, **kwargs)
    return decorated_function
