from sqlmodel import Session

from fastapi.testclient import TestClient

from datingapp import models
from datingapp.database import engine
from datingapp.main import app

client = TestClient(app)


def _send(sender, recipient, content='hello'):
    body = {'recipientUsername': recipient['username'], 'content': content}
    return client.post('/api/messages', json=body, headers=sender['headers'])


def _container(user, name):
    r = client.get('/api/messages', params={'container': name}, headers=user['headers'])
    assert r.status_code == 200
    return [m['content'] for m in r.json()]


def test_create_message(register_user):
    alice = register_user('alice')
    bob = register_user('bob')
    r = _send(alice, bob, 'hi bob')
    assert r.status_code == 200
    msg = r.json()
    assert msg['senderUsername'] == alice['username']
    assert msg['recipientUsername'] == bob['username']
    assert msg['senderId'] == alice['id']
    assert msg['recipientId'] == bob['id']
    assert msg['content'] == 'hi bob'
    assert msg['dateRead'] is None
    assert msg['messageSent']


def test_create_message_errors(register_user):
    alice = register_user('lonely')
    r = client.post(
        '/api/messages',
        json={'recipientUsername': alice['username'].upper(), 'content': 'me'},
        headers=alice['headers'],
    )
    assert r.status_code == 400
    assert r.json()['detail'] == 'You cannot message yourself'

    r = client.post('/api/messages', json={'recipientUsername': 'nobody-here', 'content': 'x'}, headers=alice['headers'])
    assert r.status_code == 400
    assert r.json()['detail'] == 'Cannot send message at this time'

    r = client.post('/api/messages', json={'recipientUsername': 'nobody-here'}, headers=alice['headers'])
    assert r.status_code == 422


def test_containers_and_thread_marks_read(register_user):
    alice = register_user('sender')
    bob = register_user('reader')
    _send(alice, bob, 'one')
    _send(alice, bob, 'two')
    _send(bob, alice, 'reply')

    # newest first
    assert _container(bob, 'Unread') == ['two', 'one']
    assert _container(bob, 'Inbox') == ['two', 'one']
    assert _container(bob, 'Outbox') == ['reply']
    assert _container(alice, 'Outbox') == ['two', 'one']
    # Unread is the default container
    r = client.get('/api/messages', headers=alice['headers'])
    assert [m['content'] for m in r.json()] == ['reply']

    thread = client.get(f"/api/messages/thread/{alice['username']}", headers=bob['headers'])
    assert thread.status_code == 200
    body = thread.json()
    assert [m['content'] for m in body] == ['one', 'two', 'reply']
    received = [m for m in body if m['recipientUsername'] == bob['username']]
    assert all(m['dateRead'] for m in received)
    sent = [m for m in body if m['senderUsername'] == bob['username']]
    assert all(m['dateRead'] is None for m in sent)

    # the read state was saved
    assert _container(bob, 'Unread') == []
    assert _container(bob, 'Inbox') == ['two', 'one']
    assert _container(alice, 'Unread') == ['reply']


def test_messages_are_paged(register_user):
    alice = register_user('chatty')
    bob = register_user('busy')
    for i in range(3):
        _send(alice, bob, f'm{i}')
    r = client.get('/api/messages', params={'container': 'Inbox', 'pageSize': 2}, headers=bob['headers'])
    assert [m['content'] for m in r.json()] == ['m2', 'm1']
    assert '"totalItems": 3' in r.headers['Pagination']


def test_delete_is_one_sided_until_both_delete(register_user):
    alice = register_user('del-a')
    bob = register_user('del-b')
    msg_id = _send(alice, bob, 'secret').json()['id']

    r = client.delete(f'/api/messages/{msg_id}', headers=alice['headers'])
    assert r.status_code == 200
    assert _container(alice, 'Outbox') == []
    assert _container(bob, 'Inbox') == ['secret']
    thread = client.get(f"/api/messages/thread/{bob['username']}", headers=alice['headers']).json()
    assert thread == []

    with Session(engine) as session:
        assert session.get(models.Message, msg_id) is not None

    r = client.delete(f'/api/messages/{msg_id}', headers=bob['headers'])
    assert r.status_code == 200
    assert _container(bob, 'Inbox') == []
    with Session(engine) as session:
        assert session.get(models.Message, msg_id) is None


def test_delete_message_errors(register_user):
    alice = register_user('own-a')
    bob = register_user('own-b')
    eve = register_user('eve')
    msg_id = _send(alice, bob, 'private').json()['id']

    r = client.delete(f'/api/messages/{msg_id}', headers=eve['headers'])
    assert r.status_code == 403

    r = client.delete('/api/messages/999999', headers=alice['headers'])
    assert r.status_code == 400
    assert r.json()['detail'] == 'Cannot delete this message'
