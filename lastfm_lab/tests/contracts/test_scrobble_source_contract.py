from lastfm_lab.domain.periods import ReportPeriod
from lastfm_lab.domain.ports import ScrobbleSource
from lastfm_lab.domain.results import FetchFailure, FetchResult
from lastfm_lab.tests.fakes import FakeScrobbleSource, tags_payload, user_payload


def test_contract_results_are_fetch_results():
    source: ScrobbleSource = FakeScrobbleSource(
        user=user_payload(playcount=3),
        tags={"Burial": tags_payload(("dubstep", 10))},
    )

    results = [
        source.get_recent_tracks("alice"),
        source.get_top_tracks("alice", ReportPeriod.PAST_MONTH),
        source.get_top_artists("alice", ReportPeriod.PAST_MONTH),
        source.get_user_info("alice"),
        source.get_artist_top_tags("Burial"),
    ]

    assert all(isinstance(r, FetchResult) for r in results)
    assert results[3].ok and results[4].ok


def test_contract_failures_collapse_to_empty_object():
    source = FakeScrobbleSource(recent=FetchFailure.TRANSPORT)

    result = source.get_recent_tracks("alice")

    assert not result.ok
    assert result.or_empty() == {}


def test_contract_gather_returns_every_key():
    source = FakeScrobbleSource(user=user_payload())

    results = source.gather({
        'user': lambda: source.get_user_info("alice"),
        'tags': lambda: source.get_artist_top_tags("Unknown"),
    })

    assert set(results) == {'user', 'tags'}
    assert results['user'].ok
    assert not results['tags'].ok
