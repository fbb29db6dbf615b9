from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app import create_app

from conftest import ADMIN_EMAIL, FakeMailSender, make_env


def post(client, payload, remote_addr='127.0.0.1'):
    return client.post('/send-email', json=payload, environ_base={'REMOTE_ADDR': remote_addr})


def test_send_email_success_scenario(client, sender, valid_payload):
    response = post(client, valid_payload)

    assert response.status_code == 200
    assert response.get_json() == {
        'success': True,
        'message': 'Your message has been sent successfully'
    }
    assert sender.recipients == [ADMIN_EMAIL, 'a@b.com']


def test_invalid_email_scenario(client, sender):
    response = post(client, {'to': 'not-an-email', 'subject': 'Hi', 'name': 'Sam', 'message': 'Hello'})

    assert response.status_code == 400
    assert response.get_json() == {'success': False, 'error': 'Please provide a valid email address'}
    assert sender.sent == []


@pytest.mark.parametrize('field', ['to', 'subject', 'name', 'message'])
def test_missing_field_returns_400(client, sender, valid_payload, field):
    del valid_payload[field]
    response = post(client, valid_payload)

    assert response.status_code == 400
    body = response.get_json()
    assert body['success'] is False
    assert body['error'].startswith('All fields are required')
    assert sender.sent == []


def test_non_string_field_returns_400(client, sender, valid_payload):
    valid_payload['message'] = {'text': 'Hello'}
    response = post(client, valid_payload)

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid field type: message must be a string'
    assert sender.sent == []


def test_form_encoded_submission(client, sender):
    response = client.post('/send-email', data={
        'to': 'a@b.com', 'subject': 'Hi', 'name': 'Sam', 'message': 'Hello'
    })

    assert response.status_code == 200
    assert len(sender.sent) == 2


def test_malformed_json_returns_400(client, sender):
    response = client.post('/send-email', data='{"to": ', content_type='application/json')

    assert response.status_code == 400
    assert response.get_json() == {'success': False, 'error': 'Invalid request body'}
    assert sender.sent == []


def test_json_array_body_returns_400(client, sender):
    response = post(client, ['a@b.com', 'Hi'])

    assert response.status_code == 400
    assert response.get_json()['success'] is False
    assert sender.sent == []


def test_admin_failure_returns_500_without_confirmation(env, valid_payload):
    sender = FakeMailSender(fail_for=[ADMIN_EMAIL])
    client = create_app('testing', environ=env, mail_sender=sender).test_client()

    response = post(client, valid_payload)

    assert response.status_code == 500
    body = response.get_json()
    assert body['success'] is False
    assert body['error'] == 'Failed to send email. Please try again later.'
    assert 'stack' in body
    assert sender.recipients == [ADMIN_EMAIL]


def test_production_hides_stack(env, valid_payload):
    sender = FakeMailSender(fail_for=[ADMIN_EMAIL])
    client = create_app('production', environ=env, mail_sender=sender).test_client()

    response = post(client, valid_payload)

    assert response.status_code == 500
    assert 'stack' not in response.get_json()


def test_confirmation_failure_still_returns_200(env, valid_payload):
    sender = FakeMailSender(fail_for=['a@b.com'])
    client = create_app('testing', environ=env, mail_sender=sender).test_client()

    response = post(client, valid_payload)

    assert response.status_code == 200
    assert response.get_json()['success'] is True
    assert sender.recipients == [ADMIN_EMAIL, 'a@b.com']


def test_admin_recipient_gets_single_message(client, sender):
    response = post(client, {'to': ADMIN_EMAIL, 'subject': 'Hi', 'name': 'Sam', 'message': 'Hello'})

    assert response.status_code == 200
    assert sender.recipients == [ADMIN_EMAIL]


def test_truncation_applied_to_outgoing_messages(client, sender):
    post(client, {
        'to': 'a@b.com',
        'subject': 'S' * 300,
        'name': 'N' * 300,
        'message': 'M' * 3000,
    })

    admin = sender.sent[0]
    assert admin.subject == 'New Inquiry: ' + 'S' * 100
    assert 'N' * 51 not in admin.text
    assert 'M' * 2001 not in admin.text
    assert 'M' * 2000 in admin.html


def test_markup_in_fields_is_escaped_in_admin_html(client, sender):
    post(client, {
        'to': 'a@b.com',
        'subject': 'Hi',
        'name': '<img src=x onerror=alert(1)>',
        'message': 'Hello',
    })

    assert '<img src=x' not in sender.sent[0].html
    assert '&lt;img src=x onerror=alert(1)&gt;' in sender.sent[0].html


def test_sixth_request_is_rate_limited(client, sender):
    payload = {'to': ADMIN_EMAIL, 'subject': 'Hi', 'name': 'Sam', 'message': 'Hello'}

    for _ in range(5):
        assert post(client, payload, remote_addr='10.0.0.1').status_code == 200

    response = post(client, payload, remote_addr='10.0.0.1')
    assert response.status_code == 429
    assert response.get_json() == {
        'success': False,
        'error': 'Too many requests, please try again later.'
    }
    assert len(sender.sent) == 5

    # Other addresses keep their own window
    assert post(client, payload, remote_addr='10.0.0.2').status_code == 200


def test_invalid_submissions_count_towards_limit(client):
    for _ in range(5):
        assert post(client, {}, remote_addr='10.0.0.3').status_code == 400
    assert post(client, {}, remote_addr='10.0.0.3').status_code == 429


def test_rate_limit_is_configurable(sender):
    client = create_app('testing', environ=make_env(SEND_EMAIL_RATE_LIMIT='1 per minute'),
                        mail_sender=sender).test_client()
    payload = {'to': ADMIN_EMAIL, 'subject': 'Hi', 'name': 'Sam', 'message': 'Hello'}

    assert post(client, payload).status_code == 200
    assert post(client, payload).status_code == 429


def test_health(client):
    for _ in range(10):
        response = client.get('/health')
        assert response.status_code == 200

    body = response.get_json()
    assert body['status'] == 'OK'
    assert datetime.fromisoformat(body['time'].replace('Z', '+00:00'))
    assert body['uptime'] >= 0


def test_security_headers(client):
    response = client.get('/health')

    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['X-Frame-Options'] == 'DENY'
    assert 'max-age' in response.headers['Strict-Transport-Security']
    assert 'Content-Security-Policy' in response.headers
    assert 'Referrer-Policy' in response.headers


def test_security_headers_on_errors(client):
    response = post(client, {})
    assert response.headers['X-Content-Type-Options'] == 'nosniff'


def test_cors_allows_any_origin_by_default(client):
    response = client.get('/health', headers={'Origin': 'https://example.com'})
    assert response.headers['Access-Control-Allow-Origin'] == '*'


def test_cors_restricted_origins(sender):
    app = create_app('testing', environ=make_env(ALLOWED_ORIGINS='https://site.com, https://www.site.com'),
                     mail_sender=sender)
    client = app.test_client()

    allowed = client.get('/health', headers={'Origin': 'https://www.site.com'})
    assert allowed.headers['Access-Control-Allow-Origin'] == 'https://www.site.com'

    denied = client.get('/health', headers={'Origin': 'https://evil.example'})
    assert 'Access-Control-Allow-Origin' not in denied.headers


def test_unknown_route_returns_json_404(client):
    response = client.get('/nope')
    assert response.status_code == 404
    assert response.get_json() == {'success': False, 'error': 'Not found'}


def test_wrong_method_returns_json_405(client):
    response = client.get('/send-email')
    assert response.status_code == 405
    assert response.get_json() == {'success': False, 'error': 'Method not allowed'}


def test_unexpected_error_returns_500(env, valid_payload):
    class ExplodingSender:
        def send(self, message):
            raise RuntimeError('transport bug')

    client = create_app('testing', environ=env, mail_sender=ExplodingSender()).test_client()
    response = post(client, valid_payload)

    assert response.status_code == 500
    body = response.get_json()
    assert body['success'] is False
    assert body['error'] == 'Internal server error'
    assert 'RuntimeError' in body['stack']


def test_multiline_subject_relayed_through_smtp(env):
    smtp = MagicMock()
    smtp.connect = AsyncMock()
    smtp.login = AsyncMock()
    smtp.send_message = AsyncMock(return_value=({}, '2.0.0 OK queued'))
    smtp.quit = AsyncMock()
    smtp.is_connected = True

    with patch('core.mail_sender.aiosmtplib.SMTP', return_value=smtp):
        client = create_app('testing', environ=env).test_client()
        response = post(client, {
            'to': 'a@b.com', 'subject': 'Hi\nthere', 'name': 'Sam\r\nSmith', 'message': 'Hello',
        })

    assert response.status_code == 200
    assert smtp.send_message.await_count == 2
    admin = smtp.send_message.await_args_list[0].args[0]
    assert admin['Subject'] == 'New Inquiry: Hi there'


def test_forwarded_for_ignored_without_trusted_proxy(env, sender):
    client = create_app('production', environ=env, mail_sender=sender).test_client()
    payload = {'to': ADMIN_EMAIL, 'subject': 'Hi', 'name': 'Sam', 'message': 'Hello'}

    codes = [
        client.post('/send-email', json=payload, headers={'X-Forwarded-For': f'10.0.0.{i}'}).status_code
        for i in range(6)
    ]

    assert codes == [200] * 5 + [429]
    assert len(sender.sent) == 5


def test_forwarded_for_honoured_behind_trusted_proxy(sender):
    app = create_app('production', environ=make_env(PROXY_FIX_X_FOR='1'), mail_sender=sender)
    client = app.test_client()
    payload = {'to': ADMIN_EMAIL, 'subject': 'Hi', 'name': 'Sam', 'message': 'Hello'}

    for _ in range(5):
        client.post('/send-email', json=payload, headers={'X-Forwarded-For': '203.0.113.7'})

    limited = client.post('/send-email', json=payload, headers={'X-Forwarded-For': '203.0.113.7'})
    other = client.post('/send-email', json=payload, headers={'X-Forwarded-For': '203.0.113.8'})

    assert limited.status_code == 429
    assert other.status_code == 200


def test_limiter_on_context_can_be_reset(app, client):
    payload = {'to': ADMIN_EMAIL, 'subject': 'Hi', 'name': 'Sam', 'message': 'Hello'}
    for _ in range(5):
        post(client, payload)
    assert post(client, payload).status_code == 429

    app.relay_context.limiter.reset()

    assert post(client, payload).status_code == 200
