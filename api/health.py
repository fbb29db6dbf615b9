# api/health.py
"""
Health check endpoint for monitoring and load balancing
"""

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Basic health check endpoint"""
    now = datetime.now(timezone.utc)
    started = current_app.config.get('START_TIME', now)

    return jsonify({
        'status': 'OK',
        'time': now.isoformat().replace('+00:00', 'Z'),
        'uptime': round((now - started).total_seconds(), 3)
    })
