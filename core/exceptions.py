# core/exceptions.py
"""
Exception hierarchy for the contact relay
"""

from typing import List, Optional


class ContactRelayError(Exception):
    """Base exception for contact relay operations"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(ContactRelayError):
    """Required environment configuration is missing or invalid"""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class ValidationError(ContactRelayError):
    """Submitted form fields failed validation"""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = fields or []


class RenderError(ContactRelayError):
    """Email template could not be resolved or rendered"""
    pass


class SendError(ContactRelayError):
    """Mail transport failed to deliver a message"""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result
