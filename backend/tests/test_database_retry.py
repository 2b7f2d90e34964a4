import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, select

from pulihhati import database
from pulihhati.config import settings
from pulihhati.database import call_with_retry, engine, is_retryable, retry_on_disconnect
from pulihhati.errors import DatabaseUnavailableError


class _PgError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def _op_error(message='server closed the connection unexpectedly', sqlstate=None):
    return OperationalError('SELECT 1', {}, _PgError(message, sqlstate))


@pytest.fixture
def no_wait(monkeypatch):
    """Record sleeps and pool resets instead of performing them."""
    calls = {'sleeps': [], 'resets': 0}

    def _reset():
        calls['resets'] += 1

    monkeypatch.setattr(database, '_sleep', calls['sleeps'].append)
    monkeypatch.setattr(database, 'reset_pool', _reset)
    monkeypatch.setattr(settings, 'DB_RETRY_BASE_DELAY', 0.5)
    monkeypatch.setattr(settings, 'DB_MAX_RETRIES', 3)
    return calls


def test_retryable_classification():
    assert is_retryable(_op_error(sqlstate='57P01'))
    assert is_retryable(_op_error(sqlstate='53300'))
    assert is_retryable(_op_error('could not connect to server'))
    assert not is_retryable(_op_error('syntax error', sqlstate='42601'))
    assert not is_retryable(IntegrityError('INSERT', {}, _PgError('duplicate key', '23505')))
    assert not is_retryable(ValueError('nope'))


def test_recovers_after_transient_failures(no_wait):
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise _op_error(sqlstate='08006')
        return 'ok'

    with Session(engine) as session:
        assert call_with_retry(session, flaky) == 'ok'
    assert len(attempts) == 3
    assert no_wait['sleeps'] == [0.5, 1.0]
    assert no_wait['resets'] == 2


def test_gives_up_after_max_retries(no_wait):
    attempts = []

    def down():
        attempts.append(1)
        raise _op_error(sqlstate='57P03')

    with Session(engine) as session:
        with pytest.raises(DatabaseUnavailableError):
            call_with_retry(session, down)
    assert len(attempts) == 4
    assert no_wait['sleeps'] == [0.5, 1.0, 2.0]


def test_non_retryable_errors_propagate(no_wait):
    def broken():
        raise IntegrityError('INSERT', {}, _PgError('duplicate key', '23505'))

    with Session(engine) as session:
        with pytest.raises(IntegrityError):
            call_with_retry(session, broken)
    assert no_wait['sleeps'] == []


def test_decorator_uses_instance_session(no_wait):
    class Repo:
        def __init__(self, session):
            self.session = session
            self.calls = 0

        @retry_on_disconnect
        def load(self, value):
            self.calls += 1
            if self.calls == 1:
                raise _op_error()
            return value * 2

    with Session(engine) as session:
        repo = Repo(session)
        assert repo.load(21) == 42
    assert repo.calls == 2


def test_unavailable_database_maps_to_503(make_user, no_wait, monkeypatch):
    from fastapi.testclient import TestClient
    from pulihhati import repositories
    from pulihhati.main import app

    user = make_user()

    def _down(self, user_id):
        raise _op_error(sqlstate='08001')

    monkeypatch.setattr(repositories.UserRepository, 'get', _down)
    r = TestClient(app).get('/api/auth/me', headers=user['headers'])
    assert r.status_code == 503
    assert r.json()['detail'] == 'Database temporarily unavailable'


# --- write operations -------------------------------------------------------

def _fail_once(monkeypatch, owner, name):
    """Make `owner.name` raise a dropped-connection error on its first call only."""
    original = getattr(owner, name)
    calls = []

    def _flaky(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise _op_error(sqlstate='08006')
        return original(*args, **kwargs)

    monkeypatch.setattr(owner, name, _flaky)
    return calls


def _client():
    from fastapi.testclient import TestClient
    from pulihhati.main import app
    return TestClient(app)


def test_like_is_not_undone_when_read_after_commit_fails(make_user, no_wait, monkeypatch):
    from pulihhati import models, repositories

    client = _client()
    author = make_user('Writer')
    fan = make_user('Fan')
    post = client.post('/api/safespace/posts', json={'content': 'hari ini'}, headers=author['headers']).json()

    calls = _fail_once(monkeypatch, repositories.LikeRepository, 'list_for_posts')
    r = client.put(f"/api/safespace/posts/{post['id']}/like", headers=fan['headers'])
    assert r.status_code == 200
    assert r.json() == [{'user': fan['user']['id'], 'name': 'Fan'}]
    assert len(calls) == 2
    assert no_wait['sleeps'] == [0.5]

    with Session(engine) as session:
        likes = session.exec(select(models.PostLike).where(models.PostLike.post_id == post['id'])).all()
        notes = session.exec(select(models.Notification).where(
            models.Notification.user_id == author['user']['id'], models.Notification.type == 'like',
        )).all()
    assert [like.user_id for like in likes] == [fan['user']['id']]
    assert len(notes) == 1


def test_post_is_created_once_when_read_after_commit_fails(make_user, no_wait, monkeypatch):
    from pulihhati import models, repositories

    client = _client()
    author = make_user('Once')
    _fail_once(monkeypatch, repositories.PostRepository, 'get_with_author')
    r = client.post('/api/safespace/posts', json={'content': 'sekali saja'}, headers=author['headers'])
    assert r.status_code == 201, r.text
    assert r.json()['content'] == 'sekali saja'

    with Session(engine) as session:
        posts = session.exec(select(models.Post).where(models.Post.author_id == author['user']['id'])).all()
    assert len(posts) == 1


def test_register_retries_work_that_was_not_committed(no_wait, monkeypatch):
    from pulihhati import models, repositories

    client = _client()
    _fail_once(monkeypatch, repositories.UserRepository, 'add')
    email = 'retry-register@pulihhati.com'
    r = client.post('/api/auth/register', json={'name': 'Retry', 'email': email, 'password': 'secret123'})
    assert r.status_code == 201, r.text
    assert r.json()['user']['email'] == email
    assert no_wait['sleeps'] == [0.5]

    with Session(engine) as session:
        users = session.exec(select(models.User).where(models.User.email == email)).all()
    assert len(users) == 1
    assert client.get('/api/auth/me', headers={'Authorization': f"Bearer {r.json()['token']}"}).status_code == 200


def test_connection_lost_during_commit_is_not_replayed(make_user, no_wait, monkeypatch):
    from pulihhati import models

    client = _client()
    author = make_user('Commit')
    _fail_once(monkeypatch, Session, 'commit')
    r = client.post('/api/safespace/posts', json={'content': 'hilang'}, headers=author['headers'])
    assert r.status_code == 503
    assert r.json()['detail'] == 'Database temporarily unavailable'
    assert no_wait['sleeps'] == []

    with Session(engine) as session:
        posts = session.exec(select(models.Post).where(models.Post.author_id == author['user']['id'])).all()
    assert posts == []


def test_nested_retried_call_leaves_retry_to_outer_call(no_wait):
    inner_attempts = []

    def inner():
        inner_attempts.append(1)
        if len(inner_attempts) == 1:
            raise _op_error(sqlstate='08006')
        return 'inner'

    with Session(engine) as session:
        outer_attempts = []

        def outer():
            outer_attempts.append(1)
            return call_with_retry(session, inner)

        assert call_with_retry(session, outer) == 'inner'
    assert len(outer_attempts) == 2
    assert len(inner_attempts) == 2
    assert no_wait['sleeps'] == [0.5]
