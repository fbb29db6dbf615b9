# middleware/security.py
"""
Security Middleware for Response Processing
"""

import logging

from flask import current_app

logger = logging.getLogger(__name__)

DEFAULT_SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
    'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Permissions-Policy': 'camera=(), microphone=(), geolocation=()'
}


def security_headers(response):
    """Add security headers to all responses"""
    headers = current_app.config.get('SECURITY_HEADERS') or DEFAULT_SECURITY_HEADERS
    for name, value in headers.items():
        response.headers.setdefault(name, value)

    # Hide server implementation details
    response.headers.pop('Server', None)
    return response
