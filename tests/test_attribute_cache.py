import pytest

from attribute_cache import AttributeCache, AttributeInfo
from models import AttributeValueRecord


class CountingFetch:
    def __init__(self, known):
        self.known = known
        self.batches = []

    def __call__(self, ids):
        self.batches.append(list(ids))
        return [AttributeValueRecord.model_validate(self.known[i]) for i in ids if i in self.known]


KNOWN = {
    1: {'id': 1, 'name': '3 jaar', 'attribute_id': [10, 'Leeftijd']},
    2: {'id': 2, 'name': 'Rood', 'attribute_id': [11, 'Kleur']},
    3: {'id': 3, 'name': 'Acme', 'attribute_id': False},
}


@pytest.fixture
def fetch():
    return CountingFetch(KNOWN)


@pytest.fixture
def cache(clock):
    return AttributeCache(ttl_seconds=300, clock=clock)


def test_miss_then_hit(cache, fetch):
    first = cache.lookup([1, 2], fetch)
    second = cache.lookup([2, 1], fetch)

    assert first == {1: AttributeInfo('3 jaar', 'Leeftijd'), 2: AttributeInfo('Rood', 'Kleur')}
    assert second == first
    assert fetch.batches == [[1, 2]]


def test_partial_miss_fetches_whole_batch_once(cache, fetch):
    cache.lookup([1], fetch)
    result = cache.lookup([1, 2, 3], fetch)

    assert fetch.batches == [[1], [1, 2, 3]]
    assert result[3] == AttributeInfo('Acme', '')


def test_entry_valid_until_expiry_inclusive(cache, fetch, clock):
    cache.lookup([1], fetch)

    clock.advance(300)
    cache.lookup([1], fetch)
    assert len(fetch.batches) == 1

    clock.advance(0.001)
    cache.lookup([1], fetch)
    assert len(fetch.batches) == 2


def test_unknown_ids_are_not_cached(cache, fetch):
    assert cache.lookup([99], fetch) == {}
    assert cache.lookup([99], fetch) == {}
    assert fetch.batches == [[99], [99]]


def test_empty_and_duplicate_ids(cache, fetch):
    assert cache.lookup([], fetch) == {}
    cache.lookup([1, 1, 2, 1], fetch)
    assert fetch.batches == [[1, 2]]
