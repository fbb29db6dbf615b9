import pytest

from app import create_app
from config.settings import load_config
from core.context import RelayContext
from core.mail_composer import MailComposer
from core.mail_sender import SendResult
from core.template_engine import TemplateEngine

ADMIN_EMAIL = 'admin@co.com'

BASE_ENV = {
    'EMAIL_USERNAME': 'relay@co.com',
    'EMAIL_PASSWORD': 'secret',
    'ADMIN_EMAIL': ADMIN_EMAIL,
}


class FakeMailSender:
    """Records every send attempt; recipients in ``fail_for`` get a failed result"""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, message):
        self.sent.append(message)
        if message.recipient in self.fail_for:
            return SendResult(success=False, recipient=message.recipient,
                              smtp_code='550', error='550 Mailbox unavailable')
        return SendResult(success=True, recipient=message.recipient, smtp_code='250')

    @property
    def recipients(self):
        return [message.recipient for message in self.sent]


def make_env(**overrides):
    env = dict(BASE_ENV)
    env.update(overrides)
    return env


def make_context(sender, config_name='testing', template_dir=None, **env_overrides):
    config = load_config(config_name, make_env(**env_overrides))
    engine = TemplateEngine(template_dir=template_dir, autoescape=config['TEMPLATE_AUTOESCAPE'],
                            enable_css_inlining=False)
    return RelayContext(
        config=config,
        template_engine=engine,
        composer=MailComposer(config, engine),
        mail_sender=sender,
    )


@pytest.fixture
def sender():
    return FakeMailSender()


@pytest.fixture
def env():
    return make_env()


@pytest.fixture
def app(sender, env):
    return create_app('testing', environ=env, mail_sender=sender)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def valid_payload():
    return {
        'to': 'a@b.com',
        'subject': 'Hi',
        'name': 'Sam',
        'message': 'Hello there',
        'phone': '123',
    }
