from fastapi.testclient import TestClient
from sqlmodel import Session, select

from pulihhati import models, repositories
from pulihhati.database import engine
from pulihhati.main import app

client = TestClient(app)


def _create_post(account, content='Hari ini berat sekali', anonymous=False):
    r = client.post('/api/safespace/posts', json={'content': content, 'is_anonymous': anonymous}, headers=account['headers'])
    assert r.status_code == 201, r.text
    return r.json()


def test_create_post_author_is_caller(make_user):
    author = make_user('Author')
    post = _create_post(author)
    assert post['author']['id'] == author['user']['id']
    assert post['author']['name'] == 'Author'
    assert post['likes'] == [] and post['comments'] == []
    assert post['likes_count'] == 0 and post['comments_count'] == 0


def test_create_post_requires_content(make_user):
    author = make_user()
    r = client.post('/api/safespace/posts', json={'content': '   '}, headers=author['headers'])
    assert r.status_code == 400


def test_anonymous_post_hides_author_from_others(make_user):
    author = make_user('Hidden')
    reader = make_user('Reader')
    post = _create_post(author, anonymous=True)

    seen_by_author = client.get(f"/api/safespace/posts/{post['id']}", headers=author['headers']).json()
    assert seen_by_author['author']['name'] == 'Hidden'

    seen_by_reader = client.get(f"/api/safespace/posts/{post['id']}", headers=reader['headers']).json()
    assert seen_by_reader['author']['name'] == 'Anonymous'
    assert seen_by_reader['author']['avatar'] is None
    assert seen_by_reader['author']['id'] == author['user']['id']


def test_feed_newest_first(make_user):
    author = make_user()
    first = _create_post(author, 'first')
    second = _create_post(author, 'second')
    ids = [p['id'] for p in client.get('/api/safespace/posts', headers=author['headers']).json()]
    assert ids.index(second['id']) < ids.index(first['id'])


def test_update_and_delete_permissions(make_user, make_admin):
    author = make_user('Owner')
    stranger = make_user('Stranger')
    admin = make_admin()
    post = _create_post(author)

    r = client.put(f"/api/safespace/posts/{post['id']}", json={'content': 'edited'}, headers=stranger['headers'])
    assert r.status_code == 403
    r = client.put(f"/api/safespace/posts/{post['id']}", json={'content': 'edited'}, headers=author['headers'])
    assert r.status_code == 200
    assert r.json()['content'] == 'edited'
    r = client.put(f"/api/safespace/posts/{post['id']}", json={'content': ''}, headers=author['headers'])
    assert r.status_code == 400

    assert client.delete(f"/api/safespace/posts/{post['id']}", headers=stranger['headers']).status_code == 403
    assert client.delete(f"/api/safespace/posts/{post['id']}", headers=admin['headers']).status_code == 200
    assert client.get(f"/api/safespace/posts/{post['id']}", headers=author['headers']).status_code == 404
    assert client.put('/api/safespace/posts/999999', json={'content': 'x'}, headers=author['headers']).status_code == 404


def test_like_toggles(make_user):
    author = make_user('Liked')
    fan = make_user('Fan')
    post = _create_post(author)

    r = client.put(f"/api/safespace/posts/{post['id']}/like", headers=fan['headers'])
    assert r.status_code == 200
    assert r.json() == [{'user': fan['user']['id'], 'name': 'Fan'}]

    r = client.put(f"/api/safespace/posts/{post['id']}/like", headers=fan['headers'])
    assert r.json() == []
    post_now = client.get(f"/api/safespace/posts/{post['id']}", headers=fan['headers']).json()
    assert post_now['likes_count'] == 0


def test_comments_add_and_delete(make_user):
    author = make_user('PostOwner')
    commenter = make_user('Commenter')
    outsider = make_user('Outsider')
    post = _create_post(author)

    r = client.post(f"/api/safespace/posts/{post['id']}/comments", json={'content': 'semangat!'}, headers=commenter['headers'])
    assert r.status_code == 201
    comments = r.json()
    assert len(comments) == 1
    assert comments[0]['author']['id'] == commenter['user']['id']

    assert client.post(f"/api/safespace/posts/{post['id']}/comments", json={'content': ''}, headers=commenter['headers']).status_code == 400
    assert client.post('/api/safespace/posts/999999/comments', json={'content': 'x'}, headers=commenter['headers']).status_code == 404

    url = f"/api/safespace/posts/{post['id']}/comments/{comments[0]['id']}"
    assert client.delete(url, headers=outsider['headers']).status_code == 403
    # the post author may remove comments on their post
    assert client.delete(url, headers=author['headers']).status_code == 200
    assert client.delete(url, headers=author['headers']).status_code == 404


def test_bookmark_toggle_and_list(make_user):
    author = make_user()
    reader = make_user('Saver')
    p1 = _create_post(author, 'one')
    p2 = _create_post(author, 'two')

    assert client.put(f"/api/safespace/posts/{p1['id']}/bookmark", headers=reader['headers']).json() == [p1['id']]
    assert client.put(f"/api/safespace/posts/{p2['id']}/bookmark", headers=reader['headers']).json() == [p1['id'], p2['id']]

    listed = client.get('/api/safespace/bookmarks', headers=reader['headers']).json()
    assert [p['id'] for p in listed] == [p2['id'], p1['id']]

    assert client.put(f"/api/safespace/posts/{p1['id']}/bookmark", headers=reader['headers']).json() == [p2['id']]


def test_delete_post_cascades(make_user):
    author = make_user('Cascade')
    friend = make_user('Friend')
    post = _create_post(author)
    client.put(f"/api/safespace/posts/{post['id']}/like", headers=friend['headers'])
    client.post(f"/api/safespace/posts/{post['id']}/comments", json={'content': 'hi'}, headers=friend['headers'])
    client.put(f"/api/safespace/posts/{post['id']}/bookmark", headers=friend['headers'])

    assert client.delete(f"/api/safespace/posts/{post['id']}", headers=author['headers']).status_code == 200

    with Session(engine) as session:
        for model in (models.PostComment, models.PostLike, models.Bookmark, models.Notification):
            rows = session.exec(select(model).where(model.post_id == post['id'])).all()
            assert rows == [], model.__name__
    assert client.get('/api/safespace/bookmarks', headers=friend['headers']).json() == []


def test_like_racing_an_identical_like_keeps_one(make_user, monkeypatch):
    author = make_user('Raced')
    fan = make_user('Fan')
    post = _create_post(author)
    assert client.put(f"/api/safespace/posts/{post['id']}/like", headers=fan['headers']).status_code == 200

    # a second request that looked before the first one committed
    monkeypatch.setattr(repositories.LikeRepository, 'get', lambda self, post_id, user_id: None)
    r = client.put(f"/api/safespace/posts/{post['id']}/like", headers=fan['headers'])
    assert r.status_code == 200
    assert r.json() == [{'user': fan['user']['id'], 'name': 'Fan'}]

    with Session(engine) as session:
        notes = session.exec(select(models.Notification).where(
            models.Notification.post_id == post['id'], models.Notification.type == 'like',
        )).all()
    assert len(notes) == 1


def test_bookmark_racing_an_identical_bookmark_keeps_one(make_user, monkeypatch):
    author = make_user()
    reader = make_user('Saver')
    post = _create_post(author)
    assert client.put(f"/api/safespace/posts/{post['id']}/bookmark", headers=reader['headers']).json() == [post['id']]

    monkeypatch.setattr(repositories.BookmarkRepository, 'get', lambda self, post_id, user_id: None)
    r = client.put(f"/api/safespace/posts/{post['id']}/bookmark", headers=reader['headers'])
    assert r.status_code == 200
    assert r.json() == [post['id']]
