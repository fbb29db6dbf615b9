# api/contact.py
"""
Contact form submission endpoint
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from services.contact_relay import ContactRelayService

contact_bp = Blueprint('contact', __name__)
logger = logging.getLogger(__name__)


def _request_payload():
    """Decode a JSON or form-encoded body into a field mapping"""
    if request.is_json:
        # Malformed JSON falls through to the 400 error handler
        return request.get_json()
    if request.form:
        return request.form.to_dict()
    return {}


@contact_bp.route('/send-email', methods=['POST'])
def send_email():
    """
    Relay a contact form submission to the admin mailbox

    Body fields: to, subject, name, message, and phone when required.
    """
    logger.info(f"Contact submission from {request.remote_addr}")

    service = ContactRelayService(current_app.relay_context)
    body, status = service.handle(_request_payload())
    return jsonify(body), status
