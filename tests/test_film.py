import json

import pytest

from arthouse_discovery.film import Film, as_film, decade_of, normalize_moods


def test_decade_of():
    assert decade_of(1979) == 1970
    assert decade_of(1980) == 1980
    assert decade_of(2001) == 2000


def test_from_dict_accepts_document_field_names():
    film = Film.from_dict({
        '_id': 'abc',
        'title': 'Stalker',
        'year': 1979,
        'derivedTags': ['slow', 'bleak'],
        'baseCanonScore': 88,
        'showCount': 4,
        'lastShownAt': '2025-01-01T00:00:00+00:00',
        'voteAverage': 8.1,
        'voteCount': 300,
    })
    assert film.id == 'abc'
    assert film.decade == 1970
    assert film.derived_tags == ['slow', 'bleak']
    assert film.base_canon_score == 88
    assert film.show_count == 4
    assert film.last_shown_at == '2025-01-01T00:00:00+00:00'
    assert film.vote_average == 8.1
    assert film.vote_count == 300


def test_from_dict_substitutes_defaults_for_bad_values():
    film = Film.from_dict({
        'id': 'x',
        'year': 'unknown',
        'popularity': 'n/a',
        'vote_count': None,
        'keywords': 'not json [',
        'genres': '["Drama", "War"]',
        'moods': '{broken',
        'depth_score': None,
        'show_count': -3,
    })
    assert film.year == 0
    assert film.popularity == 0.0
    assert film.vote_count == 0
    assert film.keywords == ['not json [']
    assert film.genres == ['Drama', 'War']
    assert film.moods == {}
    assert film.depth_score == 50
    assert film.tier == 3
    assert film.show_count == 0
    assert film.last_shown_at is None


def test_explicit_decade_is_kept():
    assert Film.from_dict({'id': 'x', 'year': 1969, 'decade': 1970}).decade == 1970
    assert Film.from_dict({'id': 'x', 'year': 1969, 'decade': '1970s'}).decade == 1970


@pytest.mark.parametrize("decade", ['seventies', float('nan'), [1970]])
def test_unusable_decade_is_derived_from_year(decade):
    assert Film.from_dict({'id': 'x', 'year': 1975, 'decade': decade}).decade == 1970


@pytest.mark.parametrize("record", [
    {'id': 'x', 'year': 'nan'},
    {'id': 'x', 'vote_count': float('inf'), 'popularity': float('-inf')},
    json.loads('{"id": "x", "showCount": NaN, "baseCanonScore": Infinity, "voteAverage": NaN}'),
])
def test_non_finite_numbers_fall_back_to_defaults(record):
    film = Film.from_dict(record)
    assert film.year == 0
    assert film.vote_count == 0
    assert film.popularity == 0.0
    assert film.show_count == 0
    assert film.base_canon_score == 0
    assert film.vote_average == 0.0


def test_non_finite_mood_weights_are_dropped():
    moods = json.loads('{"bleak": NaN, "slow": Infinity, "poetic": 0.4}')
    assert normalize_moods(moods) == {'poetic': 0.4}
    assert Film.from_dict({'id': 'x', 'moods': [['bleak', float('nan')]]}).moods == {}


def test_id_falls_back_to_slug_then_title():
    assert Film.from_dict({'slug': 'stalker', 'title': 'Stalker'}).id == 'stalker'
    assert Film.from_dict({'title': 'Stalker'}).id == 'Stalker'


def test_moods_shapes_normalize_to_the_same_map():
    as_map = {'bleak': 1.0, 'slow': 0.5}
    as_pairs = [['bleak', 1.0], ['slow', 0.5]]
    assert normalize_moods(as_map) == as_map
    assert normalize_moods(as_pairs) == as_map
    assert normalize_moods(json.dumps(as_map)) == as_map
    assert normalize_moods(json.dumps(as_pairs)) == as_map


def test_normalize_moods_drops_malformed_entries():
    assert normalize_moods([['bleak', 'heavy'], ['slow'], ['poetic', 0.4]]) == {'poetic': 0.4}
    assert normalize_moods(None) == {}
    assert normalize_moods(42) == {}


def test_primary_director():
    assert Film(id='a', directors=['Agnès Varda', 'JR']).primary_director == 'Agnès Varda'
    assert Film(id='a').primary_director is None


def test_as_film_passes_films_through():
    film = Film(id='a')
    assert as_film(film) is film
    assert as_film({'id': 'a'}) == film


def test_to_dict_round_trip_keeps_fields():
    film = Film(id='a', title='A', year=1961, decade=1960, moods={'slow': 1.0}, festival_wins=['Cannes'])
    assert Film.from_dict(film.to_dict()) == film
