"""Tests for MinHash signatures and similarity estimates."""
from __future__ import annotations

import pytest

from ingest.dedup.minhash import MAX_HASH, MinHash, MinHashSignature

LAKERS = "LeBron James scores 40 as the Lakers beat the Celtics in overtime"
LAKERS_REWORDED = "LeBron James scores 40 as the Lakers beat the Celtics in overtime!"
UNRELATED = "Yankees announce spring training roster moves ahead of the season"


class TestSignature:
    def test_identical_text_has_similarity_one(self) -> None:
        mh = MinHash()
        assert MinHash.similarity(mh.signature(LAKERS), mh.signature(LAKERS)) == 1.0

    def test_signature_is_stable_across_instances(self) -> None:
        assert MinHash(seed=42).signature(LAKERS) == MinHash(seed=42).signature(LAKERS)

    def test_case_and_whitespace_are_normalized(self) -> None:
        mh = MinHash()
        assert mh.signature("  Lakers   WIN ") == mh.signature("lakers win")

    def test_empty_text_yields_full_length_sentinel(self) -> None:
        sig = MinHash(num_hashes=16).signature("")
        assert len(sig.hashes) == 16
        assert set(sig.hashes) == {MAX_HASH}

    def test_short_text_is_a_single_shingle(self) -> None:
        mh = MinHash(shingle_size=5)
        assert mh.shingles("ab") == {"ab"}

    def test_invalid_parameters_rejected(self) -> None:
        with pytest.raises(ValueError):
            MinHash(shingle_size=0)
        with pytest.raises(ValueError):
            MinHash(num_hashes=0)


class TestSimilarity:
    def test_similarity_is_bounded(self) -> None:
        mh = MinHash()
        score = MinHash.similarity(mh.signature(LAKERS), mh.signature(UNRELATED))
        assert 0.0 <= score <= 1.0

    def test_near_duplicate_scores_higher_than_unrelated(self) -> None:
        mh = MinHash()
        base = mh.signature(LAKERS)
        near = MinHash.similarity(base, mh.signature(LAKERS_REWORDED))
        far = MinHash.similarity(base, mh.signature(UNRELATED))
        assert near > far
        assert MinHash.is_duplicate(base, mh.signature(LAKERS_REWORDED), threshold=0.8)
        assert not MinHash.is_duplicate(base, mh.signature(UNRELATED), threshold=0.8)

    def test_lower_threshold_never_flags_fewer_pairs(self) -> None:
        mh = MinHash()
        a, b = mh.signature(LAKERS), mh.signature(UNRELATED)
        if MinHash.is_duplicate(a, b, threshold=0.9):
            assert MinHash.is_duplicate(a, b, threshold=0.5)
        assert MinHash.is_duplicate(a, b, threshold=0.0)

    def test_mismatched_lengths_raise(self) -> None:
        with pytest.raises(ValueError):
            MinHash.similarity(MinHash(num_hashes=8).signature("x"), MinHash(num_hashes=16).signature("x"))


class TestSerialization:
    def test_round_trip(self) -> None:
        sig = MinHash(num_hashes=32).signature(LAKERS)
        assert MinHash.deserialize(MinHash.serialize(sig)) == sig

    def test_wire_field_names(self) -> None:
        raw = MinHash.serialize(MinHash(num_hashes=4).signature("abc"))
        assert '"shingleSize":3' in raw
        assert '"numHashes":4' in raw

    def test_malformed_payload_raises(self) -> None:
        with pytest.raises(ValueError):
            MinHash.deserialize('{"hashes": [1, 2]}')

    def test_length_mismatch_raises(self) -> None:
        with pytest.raises(ValueError):
            MinHashSignature(hashes=(1, 2), shingle_size=3, num_hashes=3)
