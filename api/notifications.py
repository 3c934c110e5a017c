# api/notifications.py
"""
Blog notification API endpoints and the queue delivery webhook
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from middleware.security import require_queue_signature

notifications_bp = Blueprint('notifications', __name__)
logger = logging.getLogger(__name__)

MESSAGE_ID_HEADER = 'Upstash-Message-Id'


def _notifier():
    return current_app.extensions['notifier']


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@notifications_bp.route('/send-blog-email', methods=['POST'])
def send_blog_email():
    """Send a blog notification to the listed recipients"""
    data = _json_body()
    summary = _notifier().notify(data.get('emails'), data.get('blog'), mode=data.get('mode'))
    return jsonify(summary)


@notifications_bp.route('/send-blog-email-all', methods=['POST'])
def send_blog_email_all():
    """Send a blog notification to every student"""
    data = _json_body()
    summary = _notifier().notify_all_students(data.get('blog'), mode=data.get('mode'))
    return jsonify(summary)


@notifications_bp.route('/test-email', methods=['POST'])
def test_email():
    data = _json_body()
    return jsonify(_notifier().send_test_email(data.get('email')))


@notifications_bp.route('/qstash-send-email', methods=['POST'])
@require_queue_signature
def qstash_send_email():
    """
    Queue delivery callback

    Returns 5xx on delivery failure so the queue retries the job.
    """
    message_id = request.headers.get(MESSAGE_ID_HEADER)
    logger.info(f"Queue callback received: message {message_id}")
    result = _notifier().handle_delivery(request.get_json(silent=True), message_id=message_id)
    return jsonify(result)
