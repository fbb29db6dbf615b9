# services/contact_relay.py
"""
Contact form relay service

Runs one submission through validation, sanitization, composition and
delivery. The admin notification must be delivered for the request to
succeed; the user confirmation is best-effort and its failure never changes
the response.
"""

import logging
import traceback
from enum import Enum
from typing import Any, Dict, Mapping, Tuple

from core.context import RelayContext
from core.exceptions import RenderError, SendError, ValidationError
from core.sanitizer import sanitize_submission
from core.validator import Submission, validate_submission

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Your message has been sent successfully"
ADMIN_SEND_FAILED_MESSAGE = "Failed to send email. Please try again later."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"


class RelayState(Enum):
    """Request processing states"""
    RECEIVED = "received"
    VALIDATED = "validated"
    RENDERED = "rendered"
    ADMIN_SENT = "admin_sent"
    USER_SENT = "user_sent"
    RESPONDED = "responded"
    REJECTED_INPUT = "rejected_input"
    INTERNAL_FAILURE = "internal_failure"


class ContactRelayService:
    """Request handler for contact form submissions"""

    def __init__(self, context: RelayContext):
        self.context = context

    def handle(self, payload: Mapping[str, Any]) -> Tuple[Dict[str, Any], int]:
        """
        Process one submission

        Args:
            payload: Decoded request body

        Returns:
            Tuple of (response body, HTTP status)
        """
        state = RelayState.RECEIVED

        try:
            submission = sanitize_submission(
                validate_submission(payload, require_phone=self.context.require_phone)
            )
            state = self._transition(state, RelayState.VALIDATED, submission)

            admin_message = self.context.composer.compose_admin_notification(submission)
            state = self._transition(state, RelayState.RENDERED, submission)

            result = self.context.mail_sender.send(admin_message)
            if not result.success:
                logger.error(f"Admin notification failed for submission from {submission.to}: {result.error}")
                raise SendError(ADMIN_SEND_FAILED_MESSAGE, result=result)
            state = self._transition(state, RelayState.ADMIN_SENT, submission)

            if self.context.composer.wants_confirmation(submission):
                if self._send_confirmation(submission):
                    state = self._transition(state, RelayState.USER_SENT, submission)

        except ValidationError as e:
            self._transition(state, RelayState.REJECTED_INPUT)
            logger.info(f"Rejected submission: {e.message} (fields: {', '.join(e.fields)})")
            return {'success': False, 'error': e.message}, 400

        except (RenderError, SendError) as e:
            self._transition(state, RelayState.INTERNAL_FAILURE)
            return self._internal_failure(e, e.message), 500

        self._transition(state, RelayState.RESPONDED)
        return {'success': True, 'message': SUCCESS_MESSAGE}, 200

    def _send_confirmation(self, submission: Submission) -> bool:
        """Best-effort confirmation; failures are logged and absorbed"""
        try:
            message = self.context.composer.compose_user_confirmation(submission)
        except RenderError as e:
            logger.warning(f"Skipping confirmation to {submission.to}: {e.message}")
            return False

        try:
            result = self.context.mail_sender.send(message)
        except Exception as e:
            # The admin notification is already out; the response stays 200
            logger.error(f"Confirmation to {submission.to} raised: {e}", exc_info=True)
            return False

        if not result.success:
            logger.warning(f"Confirmation to {submission.to} failed: {result.error}")
            return False
        return True

    def _internal_failure(self, error: Exception, message: str) -> Dict[str, Any]:
        if self.context.is_production:
            logger.error(f"Email endpoint error: {error}")
        else:
            logger.error(f"Email endpoint error: {error}", exc_info=error)

        body = {'success': False, 'error': message or UNEXPECTED_ERROR_MESSAGE}
        if not self.context.is_production:
            body['stack'] = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
        return body

    @staticmethod
    def _transition(current: RelayState, target: RelayState, submission: Submission = None) -> RelayState:
        if submission is not None:
            logger.info(f"Submission from {submission.to}: {current.value} -> {target.value}")
        else:
            logger.info(f"Submission: {current.value} -> {target.value}")
        return target
