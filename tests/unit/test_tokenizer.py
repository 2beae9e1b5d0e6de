"""Unit tests for title tokenization and Jaccard similarity."""

from math import isclose

import pytest

from signalwatch.analysis.tokenizer import TokenCache, jaccard_similarity, tokenize

pytestmark = pytest.mark.unit


def test_tokenize_lowercases_and_strips_punctuation():
    assert tokenize("Iran's OIL-exports: surge!") == {"iran", "oil", "exports", "surge"}


def test_tokenize_drops_short_words_and_stopwords():
    tokens = tokenize("The US and EU say it is over")
    assert tokens == {"say", "over"}


def test_tokenize_empty_and_none():
    assert tokenize("") == frozenset()
    assert tokenize(None) == frozenset()


def test_tokenize_keeps_digits():
    assert tokenize("G20 summit 2026") == {"g20", "summit", "2026"}


def test_jaccard_shared_tokens():
    a = tokenize("Iran sanctions talks stall")
    b = tokenize("Iran sanctions talks resume")
    assert isclose(jaccard_similarity(a, b), 0.6)


def test_jaccard_low_overlap():
    a = tokenize("Iran oil exports")
    b = tokenize("Iran election results")
    assert isclose(jaccard_similarity(a, b), 0.2)


def test_jaccard_identical_sets():
    tokens = tokenize("Tanker seized near Hormuz")
    assert jaccard_similarity(tokens, tokens) == 1.0


def test_jaccard_empty_sets():
    assert jaccard_similarity(frozenset(), frozenset()) == 0.0
    assert jaccard_similarity(frozenset(), {"iran"}) == 0.0


def test_token_cache_memoizes_per_title():
    cache = TokenCache()
    cache.warm(["Iran sanctions talks", "Iran sanctions talks", "Chile earthquake"])

    assert len(cache) == 2
    assert cache.tokens("Chile earthquake") is cache.tokens("Chile earthquake")
