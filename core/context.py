# core/context.py
"""
Process-scoped collaborators shared by every request
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from flask_limiter import Limiter

from core.mail_composer import MailComposer
from core.template_engine import TemplateEngine


@dataclass
class RelayContext:
    """
    Built once by the application factory and injected into the request
    handler. ``mail_sender`` is any object with ``send(OutgoingMessage) -> SendResult``.

    The request path reaches templates only through ``composer``.
    ``template_engine`` and ``limiter`` are kept so tests and operators can
    inspect or replace the instances the factory built (e.g. resetting the
    limiter's storage between runs).
    """
    config: Dict[str, Any]
    template_engine: TemplateEngine
    composer: MailComposer
    mail_sender: Any
    limiter: Optional[Limiter] = None

    @property
    def is_production(self) -> bool:
        return self.config.get('ENV') == 'production'

    @property
    def require_phone(self) -> bool:
        return bool(self.config.get('REQUIRE_PHONE', False))
