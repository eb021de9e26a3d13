from datetime import date

from datingapp import models
from datingapp.repositories import UnitOfWork, years_before
from datingapp.schemas import LikesParams, MessageParams, UserParams


def _user(uow, username, gender='female', dob=date(1990, 6, 1)):
    user = models.AppUser(
        username=username,
        password_hash='x',
        date_of_birth=dob,
        known_as=username.title(),
        gender=gender,
        city='C',
        country='K',
    )
    uow.user_repo.add(user)
    return user


def test_years_before_handles_leap_day():
    assert years_before(date(2024, 2, 29), 1) == date(2023, 2, 28)
    assert years_before(date(2024, 2, 29), 4) == date(2020, 2, 29)
    assert years_before(date(2025, 7, 10), 18) == date(2007, 7, 10)


def test_complete_only_commits_real_changes(db_session):
    uow = UnitOfWork(db_session)
    assert uow.has_changes() is False
    assert uow.complete() is False

    user = _user(uow, 'ann')
    assert uow.has_changes() is True
    assert uow.complete() is True
    assert uow.has_changes() is False

    # re-assigning the same loaded value is not a change
    assert user.city == 'C'
    user.city = 'C'
    assert uow.complete() is False
    user.city = 'D'
    assert uow.complete() is True


def test_autoflushed_changes_still_count(db_session):
    uow = UnitOfWork(db_session)
    _user(uow, 'bea')
    # the query autoflushes the pending insert
    assert uow.user_repo.username_exists('BEA')
    assert uow.has_changes() is True
    assert uow.complete() is True


def test_get_members_filters_and_excludes(db_session):
    uow = UnitOfWork(db_session)
    today = date.today()
    _user(uow, 'me', dob=years_before(today, 30))
    _user(uow, 'young', dob=years_before(today, 20))
    _user(uow, 'exact', dob=years_before(today, 25))
    _user(uow, 'male', gender='male', dob=years_before(today, 25))
    uow.complete()

    params = UserParams(current_username='ME', gender='female', min_age=21, max_age=40)
    page = uow.user_repo.get_members(params)
    assert [u.username for u in page] == ['exact']
    assert page.total_count == 1

    everyone = uow.user_repo.get_members(UserParams(current_username='me'))
    assert {u.username for u in everyone} == {'young', 'exact', 'male'}


def test_likes_predicates(db_session):
    uow = UnitOfWork(db_session)
    me, a, b = _user(uow, 'me'), _user(uow, 'a'), _user(uow, 'b')
    uow.complete()
    for src, tgt in [(me, a), (me, b), (b, me)]:
        uow.likes_repo.add_like(models.UserLike(source_user_id=src.id, target_user_id=tgt.id))
    uow.complete()

    def names(predicate):
        return [u.username for u in uow.likes_repo.get_user_likes(LikesParams(user_id=me.id, predicate=predicate))]

    assert names('liked') == ['a', 'b']
    assert names('likedBy') == ['b']
    assert names('mutual') == ['b']
    assert sorted(uow.likes_repo.get_current_user_like_ids(me.id)) == sorted([a.id, b.id])

    uow.likes_repo.remove_user_likes(b.id)
    uow.complete()
    assert names('liked') == ['a']
    assert names('likedBy') == []


def test_message_containers_skip_deleted(db_session):
    uow = UnitOfWork(db_session)
    ann, bob = _user(uow, 'ann'), _user(uow, 'bob')
    uow.complete()

    def send(sender, recipient, content, **flags):
        msg = models.Message(
            sender_id=sender.id,
            sender_username=sender.username,
            recipient_id=recipient.id,
            recipient_username=recipient.username,
            content=content,
            **flags,
        )
        uow.message_repo.add_message(msg)
        return msg

    send(ann, bob, 'unread')
    send(ann, bob, 'read', date_read=models.utcnow())
    send(ann, bob, 'hidden', recipient_deleted=True)
    uow.complete()

    def contents(container, username='bob'):
        page = uow.message_repo.get_messages_for_user(MessageParams(username=username, container=container))
        return sorted(m.content for m in page)

    assert contents('Unread') == ['unread']
    assert contents('Inbox') == ['read', 'unread']
    assert contents('Outbox', 'ann') == ['hidden', 'read', 'unread']

    thread = uow.message_repo.get_message_thread('bob', 'ANN')
    assert [m.content for m in thread] == ['unread', 'read']
    assert len(uow.message_repo.get_message_thread('ann', 'bob')) == 3


def test_role_membership(db_session):
    uow = UnitOfWork(db_session)
    user = _user(uow, 'rolly')
    assert uow.role_repo.add_to_roles(user, ['Member', 'Moderator'])
    uow.complete()
    assert uow.role_repo.get_user_role_names(user) == ['Member', 'Moderator']

    assert uow.role_repo.add_to_roles(user, ['Nope']) is False
    assert uow.role_repo.get_user_role_names(user) == ['Member', 'Moderator']

    uow.role_repo.remove_from_roles(user, ['Member'])
    uow.complete()
    assert uow.role_repo.get_user_role_names(user) == ['Moderator']
    assert [u.username for u in uow.user_repo.get_users_with_roles()] == ['rolly']
