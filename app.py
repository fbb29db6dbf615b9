# app.py
"""
Flask Application Factory for the Contact Relay

Wires together:
- Environment configuration with fail-fast validation
- Logging suitable for journald / container stdout
- CORS and per-address rate limiting
- Security headers and JSON error handling
- The relay context (template engine, composer, mail sender, limiter)
"""

import logging
import logging.handlers
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.errors import RateLimitExceeded
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from api.contact import contact_bp
from api.health import health_bp
from config.settings import load_config
from core.context import RelayContext
from core.exceptions import ConfigurationError
from core.mail_composer import MailComposer
from core.mail_sender import SMTPMailSender
from core.template_engine import TemplateEngine
from middleware.security import security_headers

CONSOLE_HANDLER_NAME = 'contact-relay-console'
FILE_HANDLER_NAME = 'contact-relay-file'

RATE_LIMIT_MESSAGE = 'Too many requests, please try again later.'


def setup_logging(app: Flask) -> None:
    """
    Configure logging for stdout/journald capture

    Module loggers propagate to the root logger, which gets a console
    handler unless the host process already installed one. In development
    a rotating file handler is added when LOG_FILE is set.
    """
    # Remove default Flask handlers to avoid duplicate logs
    app.logger.handlers.clear()

    journal_formatter = logging.Formatter(
        fmt='%(name)s[%(process)d]: %(levelname)s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-20s %(levelname)-8s %(funcName)-15s:%(lineno)-4d %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    log_level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    handler_names = {handler.get_name() for handler in root_logger.handlers}

    # Respect handlers installed by the host (gunicorn, basicConfig, pytest)
    if not root_logger.handlers:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.set_name(CONSOLE_HANDLER_NAME)
        console_handler.setFormatter(journal_formatter)
        root_logger.addHandler(console_handler)

    log_file = app.config.get('LOG_FILE')
    if app.config.get('ENV') == 'development' and log_file and FILE_HANDLER_NAME not in handler_names:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.set_name(FILE_HANDLER_NAME)
        file_handler.setFormatter(detailed_formatter)
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    # Suppress verbose third-party logs outside debug
    if not app.debug:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('aiosmtplib').setLevel(logging.WARNING)
        logging.getLogger('flask_limiter').setLevel(logging.WARNING)


def configure_security(app: Flask) -> Limiter:
    """
    Configure CORS and rate limiting

    Returns:
        The Limiter bound to this application
    """
    CORS(app,
         origins=app.config['ALLOWED_ORIGINS'],
         methods=['GET', 'POST'],
         allow_headers=['Content-Type'])

    limiter = Limiter(
        key_func=get_remote_address,
        app=app,
        storage_uri=app.config['RATELIMIT_STORAGE_URI'],
        strategy=app.config['RATELIMIT_STRATEGY'],
        headers_enabled=app.config['RATELIMIT_HEADERS_ENABLED'],
        default_limits=[]
    )

    # Only submissions are limited; /health stays open for monitors
    limiter.limit(app.config['SEND_EMAIL_RATE_LIMIT'])(contact_bp)

    app.logger.info(f"Security configured: origins={app.config['ALLOWED_ORIGINS']}, "
                    f"send-email limit={app.config['SEND_EMAIL_RATE_LIMIT']}")
    return limiter


def build_relay_context(app: Flask, limiter: Limiter, mail_sender: Any = None) -> RelayContext:
    """
    Create the process-scoped collaborators shared by every request
    """
    config = app.config

    template_engine = TemplateEngine(
        autoescape=config['TEMPLATE_AUTOESCAPE'],
        enable_css_inlining=config['ENABLE_CSS_INLINING']
    )
    composer = MailComposer(config, template_engine)

    if mail_sender is None:
        mail_sender = SMTPMailSender.from_config(config)
        app.logger.info(f"Mail transport configured: {mail_sender.describe()}")
        if config['SMTP_VERIFY_ON_STARTUP']:
            mail_sender.verify()

    return RelayContext(
        config=dict(config),
        template_engine=template_engine,
        composer=composer,
        mail_sender=mail_sender,
        limiter=limiter
    )


def _error_body(message: str, error: Optional[BaseException] = None, app: Optional[Flask] = None) -> Dict[str, Any]:
    body = {'success': False, 'error': message}
    if error is not None and app is not None and app.config.get('ENV') != 'production':
        body['stack'] = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
    return body


def configure_error_handlers(app: Flask) -> None:
    """
    Map HTTP and unexpected errors to the JSON error shape
    """
    @app.errorhandler(400)
    def bad_request(error):
        app.logger.warning(f"Bad request from {request.remote_addr}: {error}")
        return jsonify(_error_body('Invalid request body')), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify(_error_body('Not found')), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify(_error_body('Method not allowed')), 405

    @app.errorhandler(413)
    def payload_too_large(error):
        app.logger.warning(f"Oversized request from {request.remote_addr}")
        return jsonify(_error_body('Request body too large')), 413

    @app.errorhandler(RateLimitExceeded)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded for {request.remote_addr}: {error.description}")
        return jsonify(_error_body(RATE_LIMIT_MESSAGE)), 429

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        if isinstance(e, HTTPException):
            return jsonify(_error_body(e.description or e.name)), e.code

        app.logger.error(f"Unhandled error: {e}", exc_info=True)
        return jsonify(_error_body('Internal server error', e, app)), 500


def create_app(config_name: Optional[str] = None,
               environ: Optional[Mapping[str, str]] = None,
               mail_sender: Any = None,
               config_overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Flask application factory

    Args:
        config_name: 'development', 'testing' or 'production'; read from
            APP_ENV / FLASK_ENV when omitted
        environ: Environment mapping to read instead of os.environ
        mail_sender: Replacement for the SMTP sender (tests)
        config_overrides: Values applied after environment loading

    Returns:
        Configured Flask application instance

    Raises:
        ConfigurationError: required environment variables are missing
    """
    config = load_config(config_name, environ)
    if config_overrides:
        config.update(config_overrides)

    app = Flask(__name__)
    app.config.update(config)
    app.config['START_TIME'] = datetime.now(timezone.utc)

    setup_logging(app)
    app.logger.info(f"Starting contact relay in {app.config['ENV']} mode")

    # X-Forwarded-* is honoured only behind a configured number of proxies;
    # the rate limit keys on the resulting remote address
    proxy_hops = app.config['PROXY_FIX_X_FOR']
    if proxy_hops:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxy_hops, x_proto=proxy_hops, x_host=proxy_hops)
        app.logger.info(f"Trusting {proxy_hops} reverse proxy hop(s) for client addresses")

    limiter = configure_security(app)
    app.relay_context = build_relay_context(app, limiter, mail_sender)

    app.register_blueprint(contact_bp)
    app.register_blueprint(health_bp)

    configure_error_handlers(app)
    app.after_request(security_headers)

    app.logger.info("Flask application factory completed successfully")
    return app


def main() -> int:
    """Development server entry point"""
    # Handlers and format are installed by setup_logging() inside create_app()
    try:
        app = create_app()
    except ConfigurationError as e:
        logging.getLogger(__name__).critical(f"Refusing to start: {e.message}")
        return 1

    app.logger.info(f"Server running on http://localhost:{app.config['PORT']}")
    app.run(host='0.0.0.0', port=app.config['PORT'], debug=app.debug)
    return 0


if __name__ == '__main__':
    sys.exit(main())
