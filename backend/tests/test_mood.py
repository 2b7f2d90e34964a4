from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from pulihhati import repositories
from pulihhati.main import app
from pulihhati.services import round_half_up
from pulihhati.utils.wib import day_name, format_mood_chart, parse_entry_date, wib_today

client = TestClient(app)


def _entry(day, level=2, emoji='🙂', label='Baik'):
    return SimpleNamespace(entry_date=day, mood_level=level, mood_emoji=emoji, mood_label=label)


def test_mood_types_public():
    r = client.get('/api/mood/types')
    assert r.status_code == 200
    types = r.json()['data']
    assert [t['id'] for t in types] == [1, 2, 3, 4, 5]
    assert types[0]['emoji'] == '😊' and types[0]['label'] == 'Sangat Baik'
    assert types[4]['label'] == 'Sangat Buruk'
    assert types[2]['chartColor'] == '#EAB308'


def test_save_entry_upserts_same_day(make_user):
    user = make_user('Moody')
    r = client.post('/api/mood/entry', json={'mood_level': 2, 'entry_date': '2024-05-01'}, headers=user['headers'])
    assert r.status_code == 200
    assert r.json()['message'] == 'Mood berhasil disimpan'
    first = r.json()['data']

    r = client.post('/api/mood/entry', json={'mood_level': 5, 'entry_date': '2024-05-01'}, headers=user['headers'])
    second = r.json()['data']
    assert second['id'] == first['id']
    assert second['mood_level'] == 5
    assert second['mood_label'] == 'Sangat Buruk'

    hist = client.get('/api/mood/history?start_date=2024-05-01&end_date=2024-05-01', headers=user['headers']).json()
    assert len(hist['data']) == 1
    assert hist['data'][0]['mood_level'] == 5


@pytest.mark.parametrize('payload', [
    {'mood_level': 0},
    {'mood_level': 6},
    {},
    {'mood_level': 3, 'entry_date': '01-05-2024'},
    {'mood_level': 3, 'entry_date': '2024-02-30'},
])
def test_save_entry_validation(make_user, payload):
    user = make_user()
    r = client.post('/api/mood/entry', json=payload, headers=user['headers'])
    assert r.status_code == 400


def test_today_and_week_chart(make_user):
    user = make_user()
    assert client.get('/api/mood/today', headers=user['headers']).json()['data'] is None

    client.post('/api/mood/entry', json={'mood_level': 1}, headers=user['headers'])
    today = client.get('/api/mood/today', headers=user['headers']).json()
    assert today['data']['mood_level'] == 1
    assert today['date'] == wib_today().isoformat()

    week = client.get('/api/mood/history/week', headers=user['headers']).json()
    assert len(week['data']) == 7
    assert week['data'][-1]['isToday'] is True
    assert week['data'][-1]['mood'] == 1
    assert len(week['raw_entries']) == 1


def test_stats_distribution_and_average(make_user):
    user = make_user()
    for day, level in (('2024-03-01', 1), ('2024-03-02', 1), ('2024-03-03', 4)):
        client.post('/api/mood/entry', json={'mood_level': level, 'entry_date': day}, headers=user['headers'])

    r = client.get('/api/mood/stats?start_date=2024-03-01&end_date=2024-03-31', headers=user['headers'])
    assert r.status_code == 200
    data = r.json()['data']
    assert data['average'] == {'average_mood': 2.0, 'total_entries': 3}
    dist = {d['mood_level']: d for d in data['distribution']}
    assert dist[1]['count'] == 2
    assert dist[1]['percentage'] == 66.67
    assert dist[4]['percentage'] == 33.33


def test_delete_entry_owner_only(make_user):
    owner = make_user()
    other = make_user()
    entry = client.post('/api/mood/entry', json={'mood_level': 3, 'entry_date': '2024-01-10'}, headers=owner['headers']).json()['data']
    assert client.delete(f"/api/mood/entry/{entry['id']}", headers=other['headers']).status_code == 404
    assert client.delete(f"/api/mood/entry/{entry['id']}", headers=owner['headers']).status_code == 200
    assert client.delete(f"/api/mood/entry/{entry['id']}", headers=owner['headers']).status_code == 404


def test_chart_buckets_oldest_to_today():
    today = date(2024, 6, 9)  # a Sunday
    chart = format_mood_chart([_entry(date(2024, 6, 3)), _entry(date(2024, 6, 9), 1, '😊', 'Sangat Baik')], today)
    assert [b['date'] for b in chart] == [f'2024-06-0{d}' for d in range(3, 10)]
    assert [b['day'] for b in chart] == ['Sen', 'Sel', 'Rab', 'Kam', 'Jum', 'Sab', 'Min']
    assert chart[0]['hasEntry'] is True and chart[0]['mood'] == 2
    assert chart[1] == {
        'day': 'Sel', 'date': '2024-06-04', 'mood': None, 'emoji': None,
        'label': None, 'hasEntry': False, 'isToday': False,
    }
    assert chart[-1]['isToday'] is True and chart[-1]['emoji'] == '😊'
    assert sum(b['isToday'] for b in chart) == 1


def test_chart_ignores_entries_outside_window_and_matches_iso_strings():
    today = date(2024, 6, 9)
    chart = format_mood_chart([_entry('2024-06-08T00:00:00'), _entry(today - timedelta(days=7))], today)
    assert [b['hasEntry'] for b in chart] == [False] * 5 + [True, False]


def test_wib_day_boundary():
    # 18:30 UTC is already the next day in WIB
    assert wib_today(datetime(2024, 6, 8, 18, 30, tzinfo=timezone.utc)) == date(2024, 6, 9)
    assert wib_today(datetime(2024, 6, 8, 16, 59, tzinfo=timezone.utc)) == date(2024, 6, 8)
    assert day_name(date(2024, 6, 9)) == 'Min'


def test_parse_entry_date_strict():
    assert parse_entry_date('2024-12-31') == date(2024, 12, 31)
    for bad in ('2024-1-1', '2024/01/01', '', 'today'):
        with pytest.raises(ValueError):
            parse_entry_date(bad)


def test_save_entry_overwrites_when_a_concurrent_insert_won(make_user, monkeypatch):
    user = make_user()
    first = client.post('/api/mood/entry', json={'mood_level': 2, 'entry_date': '2024-07-01'}, headers=user['headers']).json()['data']

    # the second request looked for the day's entry before the first one committed
    monkeypatch.setattr(repositories.MoodRepository, 'get_by_date', lambda self, user_id, day: None)
    r = client.post('/api/mood/entry', json={'mood_level': 4, 'entry_date': '2024-07-01'}, headers=user['headers'])
    assert r.status_code == 200, r.text
    second = r.json()['data']
    assert second['id'] == first['id']
    assert second['mood_level'] == 4
    assert second['mood_label'] == 'Buruk'

    hist = client.get('/api/mood/history?start_date=2024-07-01&end_date=2024-07-01', headers=user['headers']).json()
    assert [e['mood_level'] for e in hist['data']] == [4]


def test_stats_round_halves_up(make_user):
    user = make_user()
    levels = [1, 1, 1, 2, 3, 3, 3, 3]
    for i, level in enumerate(levels, start=1):
        client.post('/api/mood/entry', json={'mood_level': level, 'entry_date': f'2024-04-0{i}'}, headers=user['headers'])

    data = client.get('/api/mood/stats?start_date=2024-04-01&end_date=2024-04-30', headers=user['headers']).json()['data']
    # 17 / 8 == 2.125
    assert data['average'] == {'average_mood': 2.13, 'total_entries': 8}
    dist = {d['mood_level']: d['percentage'] for d in data['distribution']}
    assert dist == {1: 37.5, 2: 12.5, 3: 50.0}


def test_round_half_up():
    assert round_half_up(Decimal('2.125')) == 2.13
    assert round_half_up(Decimal('2.115')) == 2.12
    assert round_half_up(Decimal(200) / 3) == 66.67
    assert round_half_up(Decimal(100) / 3) == 33.33
