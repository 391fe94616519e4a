from datetime import datetime, timedelta

from peekachoo import db
from peekachoo.services.scoring import end_session
from peekachoo.services.scoring.profile import collection, session_history


def test_history_lists_sessions_newest_first_with_levels(make_user, submit):
    user_id = make_user()
    start = datetime(2026, 5, 1, 10, 0)
    submit(user_id, session_id='old', level=1, now=start)
    submit(user_id, session_id='old', level=2, now=start + timedelta(minutes=3), collectible_id=4,
           collectible_name='charmander')
    end_session(db.session, user_id, 'old', now=start + timedelta(minutes=5))
    submit(user_id, session_id='new', level=1, now=start + timedelta(days=1))

    history = session_history(db.session, user_id, now=start + timedelta(days=1, minutes=1))
    assert [h['sessionId'] for h in history['history']] == ['new', 'old']
    old = history['history'][1]
    assert old['duration'] == 300
    assert [lvl['level'] for lvl in old['levels']] == [1, 2]
    assert old['levels'][1]['pokemonRevealed'] == 'charmander'
    assert history['history'][0]['duration'] == 60
    assert history['pagination'] == {'total': 2, 'limit': 20, 'offset': 0, 'hasMore': False}


def test_history_filters_by_game_and_pages(make_user, submit):
    user_id = make_user()
    for idx in range(3):
        submit(user_id, session_id=f's{idx}', game_id='custom-1' if idx else None,
               now=datetime(2026, 5, 1 + idx))
    page = session_history(db.session, user_id, limit=1)
    assert [h['sessionId'] for h in page['history']] == ['s2']
    assert page['pagination']['hasMore'] is True
    only_game = session_history(db.session, user_id, game_id='custom-1')
    assert [h['sessionId'] for h in only_game['history']] == ['s2', 's1']


def test_history_ignores_other_players(make_user, submit):
    mine = make_user()
    other = make_user()
    submit(other, session_id='theirs')
    assert session_history(db.session, mine)['history'] == []


def test_collection_marks_revealed_entries(make_user, submit):
    user_id = make_user()
    submit(user_id, collectible_id=25, collectible_name='pikachu', now=datetime(2026, 5, 1))
    submit(user_id, collectible_id=1, collectible_name='bulbasaur', now=datetime(2026, 5, 2))
    submit(user_id, collectible_id=25, collectible_name='pikachu', now=datetime(2026, 5, 3))

    data = collection(db.session, user_id, total=151)
    assert data['summary'] == {'revealed': 2, 'total': 151, 'percentage': 1.3}
    assert len(data['pokemon']) == 151
    pikachu = data['pokemon'][24]
    assert pikachu['id'] == 25 and pikachu['isRevealed'] is True
    assert pikachu['timesRevealed'] == 2
    assert data['pokemon'][1]['isRevealed'] is False
    assert [p['name'] for p in data['recentlyRevealed']] == ['bulbasaur', 'pikachu']


def test_collection_filter_and_sort(make_user, submit):
    user_id = make_user()
    submit(user_id, collectible_id=25, collectible_name='pikachu')
    submit(user_id, collectible_id=1, collectible_name='bulbasaur')

    revealed = collection(db.session, user_id, total=151, filter_by='revealed', sort_by='name', order='desc')
    assert [p['name'] for p in revealed['pokemon']] == ['pikachu', 'bulbasaur']

    hidden = collection(db.session, user_id, total=151, filter_by='hidden')
    assert len(hidden['pokemon']) == 149
    assert all(not p['isRevealed'] for p in hidden['pokemon'])
    assert len(hidden['recentlyRevealed']) == 2
