import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from datingapp.main import app, request_context_middleware

client = TestClient(app)


def test_health_and_home():
    assert client.get('/health').json() == {'status': 'ok'}
    r = client.get('/')
    assert r.status_code == 200
    assert 'Dating App API' in r.text


def test_buggy_auth(register_user):
    assert client.get('/api/buggy/auth').status_code in (401, 403)
    me = register_user('bug')
    r = client.get('/api/buggy/auth', headers=me['headers'])
    assert r.status_code == 200
    assert r.json() == 'secret text'


def test_buggy_not_found_and_bad_request():
    r = client.get('/api/buggy/not-found')
    assert r.status_code == 404
    r = client.get('/api/buggy/bad-request')
    assert r.status_code == 400
    assert r.json() == {'detail': 'This was not a good request'}


def test_buggy_server_error_returns_error_body():
    safe_client = TestClient(app, raise_server_exceptions=False)
    r = safe_client.get('/api/buggy/server-error')
    assert r.status_code == 500
    body = r.json()
    assert body['statusCode'] == 500
    assert body['errorId']
    # dev environment includes the traceback
    assert 'Traceback' in body['details']


def test_invalid_token_is_rejected():
    r = client.get('/api/users', headers={'Authorization': 'Bearer not-a-token'})
    assert r.status_code == 401
    assert r.json()['detail'] == 'invalid token'


def test_request_id_is_echoed():
    r = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert r.headers['X-Request-ID'] == 'abc123'
    generated = client.get('/health').headers['X-Request-ID']
    assert len(generated) == 32


def test_request_logs_are_scoped_to_api_paths(caplog):
    mini = FastAPI()
    mini.middleware("http")(request_context_middleware)

    @mini.get('/api/explode')
    def api_explode():
        raise RuntimeError('api boom')

    @mini.get('/static-explode')
    def static_explode():
        raise RuntimeError('static boom')

    @mini.get('/quiet')
    def quiet():
        return {'ok': True}

    mini_client = TestClient(mini, raise_server_exceptions=False)
    caplog.set_level(logging.INFO, logger='datingapp.api')

    assert mini_client.get('/static-explode').status_code == 500
    assert mini_client.get('/quiet').status_code == 200
    assert not [r for r in caplog.records if r.name == 'datingapp.api']

    assert mini_client.get('/api/explode').status_code == 500
    failed = [r for r in caplog.records if r.getMessage().startswith('request_failed')]
    assert len(failed) == 1
    assert '"/api/explode"' in failed[0].getMessage()
