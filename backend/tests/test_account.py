import jwt
from fastapi.testclient import TestClient

from datingapp.main import app
from datingapp.config import settings
from datingapp.repositories import UserRepository

client = TestClient(app)


def _body(username, **overrides):
    body = {
        'username': username,
        'password': 'secret',
        'knownAs': 'Alice',
        'gender': 'female',
        'dateOfBirth': '1990-01-01',
        'city': 'Wonderland',
        'country': 'FantasyLand',
    }
    body.update(overrides)
    return body


def test_register_lowercases_username_and_returns_token():
    r = client.post('/api/account/register', json=_body('AliceReg'))
    assert r.status_code == 200
    data = r.json()
    assert data['username'] == 'alicereg'
    assert data['knownAs'] == 'Alice'
    assert data['gender'] == 'female'
    assert data['photoUrl'] is None
    claims = jwt.decode(data['token'], settings.TOKEN_KEY, algorithms=[settings.JWT_ALGORITHM])
    assert claims['unique_name'] == 'alicereg'
    assert claims['role'] == ['Member']
    assert int(claims['nameid']) > 0


def test_register_rejects_taken_username_case_insensitively():
    assert client.post('/api/account/register', json=_body('dupuser')).status_code == 200
    r = client.post('/api/account/register', json=_body('DupUser'))
    assert r.status_code == 400
    assert r.json()['detail'] == 'Username is taken'


def test_register_validates_payload():
    # password must be 4..8 characters
    assert client.post('/api/account/register', json=_body('shortpw', password='abc')).status_code == 422
    assert client.post('/api/account/register', json=_body('longpw', password='abcdefghi')).status_code == 422
    body = _body('nocity')
    del body['city']
    assert client.post('/api/account/register', json=body).status_code == 422
    assert client.post('/api/account/register', json=_body('baddob', dateOfBirth='not-a-date')).status_code == 422


def test_register_accepts_snake_case_fields():
    body = {
        'username': 'snakecase',
        'password': 'secret',
        'known_as': 'Snake',
        'gender': 'male',
        'date_of_birth': '1991-02-03',
        'city': 'Town',
        'country': 'Land',
    }
    r = client.post('/api/account/register', json=body)
    assert r.status_code == 200
    assert r.json()['knownAs'] == 'Snake'


def test_login_flow():
    client.post('/api/account/register', json=_body('loginuser'))
    ok = client.post('/api/account/login', json={'username': 'LoginUser', 'password': 'secret'})
    assert ok.status_code == 200
    assert ok.json()['username'] == 'loginuser'
    assert ok.json()['token']

    bad_pw = client.post('/api/account/login', json={'username': 'loginuser', 'password': 'nope'})
    assert bad_pw.status_code == 401
    assert bad_pw.json()['detail'] == 'Invalid password'

    unknown = client.post('/api/account/login', json={'username': 'ghost', 'password': 'secret'})
    assert unknown.status_code == 401
    assert unknown.json()['detail'] == 'Invalid username'


def test_protected_endpoint_requires_valid_token():
    r = client.get('/api/users')
    assert r.status_code in (401, 403)
    r2 = client.get('/api/users', headers={'Authorization': 'Bearer invalid.token.here'})
    assert r2.status_code == 401


def test_register_race_on_username_is_a_bad_request(monkeypatch):
    assert client.post('/api/account/register', json=_body('racer')).status_code == 200
    # the second request passes the existence check before the first commits
    monkeypatch.setattr(UserRepository, 'username_exists', lambda self, username: False)
    r = client.post('/api/account/register', json=_body('racer'))
    assert r.status_code == 400
    assert r.json()['detail'] == 'Username is taken'
    monkeypatch.undo()
    r = client.post('/api/account/login', json={'username': 'racer', 'password': 'secret'})
    assert r.status_code == 200
