from arthouse_discovery.arthouse import arthouse_score
from arthouse_discovery.canon import base_canon_score
from arthouse_discovery.enrichment import enrich_film, plan_prune
from arthouse_discovery.moods import assign_moods


def test_enrich_computes_all_derived_fields(make_film):
    film = make_film(synopsis='A quiet, meditative study of grief.')
    enriched = enrich_film(film)

    assert enriched.derived_tags == ['slow', 'melancholic']
    assert enriched.arthouse_score == arthouse_score(enriched)
    assert enriched.base_canon_score == base_canon_score(enriched)
    assert enriched.moods == assign_moods(['slow', 'melancholic'])
    # Input is left untouched
    assert film.derived_tags == []


def test_existing_tags_kept_unless_retag(make_film):
    film = make_film(synopsis='A dream.', derived_tags=['bleak'])
    assert enrich_film(film).derived_tags == ['bleak']
    assert enrich_film(film, retag=True).derived_tags == ['dreamlike']


def test_reset_counters(make_film):
    film = make_film(show_count=12, last_shown_at='2025-01-01T00:00:00+00:00')
    kept = enrich_film(film)
    assert kept.show_count == 12
    reset = enrich_film(film, reset_counters=True)
    assert reset.show_count == 0
    assert reset.last_shown_at is None


def test_enrich_accepts_raw_records():
    enriched = enrich_film({'_id': 'x', 'title': 'X', 'year': 1960, 'genres': ['Drama']})
    assert enriched.id == 'x'
    assert enriched.derived_tags == ['contemplative']
    assert enriched.moods['contemplative'] == 1.0


def test_prune_plan_preserves_curated_tiers(make_film):
    mainstream = dict(country='USA', popularity=500, vote_average=5.0, vote_count=100000, genres=['Action'])
    films = [
        make_film(id='canon', tier=1, **mainstream),
        make_film(id='curated', tier=2, **mainstream),
        make_film(id='blockbuster', tier=3, **mainstream),
        make_film(id='arthouse', tier=3, derived_tags=['slow', 'austere']),
    ]
    plan = plan_prune(films, threshold=60)

    assert plan.remove_ids == ['blockbuster']
    assert {e['id'] for e in plan.preserved} == {'canon', 'curated'}
    assert [e['id'] for e in plan.kept] == ['arthouse']
    assert plan.stats() == {'total': 4, 'preserved': 2, 'kept': 1, 'removed': 1}
    assert plan.to_remove[0]['breakdown']['total'] == 0


def test_prune_removals_sorted_lowest_first(make_film):
    films = [
        make_film(id='mid', tier=3, country='USA', genres=['Comedy'], popularity=60),
        make_film(id='low', tier=3, country='USA', genres=['Action'], popularity=500, vote_average=4.0),
    ]
    plan = plan_prune(films, threshold=60)
    assert plan.remove_ids == ['low', 'mid']
    scores = [e['score'] for e in plan.to_remove]
    assert scores == sorted(scores)


def test_prune_report_shape(make_film):
    report = plan_prune([make_film()], threshold=60).to_report(dry_run=True)
    assert report['dry_run'] is True
    assert report['threshold'] == 60
    assert set(report) == {'timestamp', 'threshold', 'dry_run', 'stats', 'preserved', 'to_remove'}
