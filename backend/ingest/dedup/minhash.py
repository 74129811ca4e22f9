"""
MinHash signatures over character shingles.

Each of the ``num_hashes`` slots uses its own universal hash
``(a * crc32(shingle) + b) mod p``, with coefficients drawn from a seeded
RNG so signatures are stable across processes and restarts.
"""
from __future__ import annotations

import json
import random
import re
import zlib
from dataclasses import dataclass
from typing import Iterable

MERSENNE_PRIME = (1 << 61) - 1
MAX_HASH = 0xFFFFFFFF

_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class MinHashSignature:
    hashes: tuple[int, ...]
    shingle_size: int
    num_hashes: int

    def __post_init__(self) -> None:
        if len(self.hashes) != self.num_hashes:
            raise ValueError(
                f"signature has {len(self.hashes)} hashes, expected {self.num_hashes}"
            )


class MinHash:
    def __init__(self, shingle_size: int = 3, num_hashes: int = 128, seed: int = 42) -> None:
        if shingle_size < 1:
            raise ValueError("shingle_size must be >= 1")
        if num_hashes < 1:
            raise ValueError("num_hashes must be >= 1")
        self.shingle_size = shingle_size
        self.num_hashes = num_hashes
        self.seed = seed
        rng = random.Random(seed)
        self._coefficients = [
            (rng.randrange(1, MERSENNE_PRIME), rng.randrange(0, MERSENNE_PRIME))
            for _ in range(num_hashes)
        ]

    @staticmethod
    def normalize(text: str) -> str:
        return _WS_RE.sub(" ", text.lower()).strip()

    def shingles(self, text: str) -> set[str]:
        normalized = self.normalize(text)
        if not normalized:
            return set()
        if len(normalized) < self.shingle_size:
            return {normalized}
        k = self.shingle_size
        return {normalized[i : i + k] for i in range(len(normalized) - k + 1)}

    def signature(self, text: str) -> MinHashSignature:
        """Fixed-length signature; empty text yields ``MAX_HASH`` in every slot."""
        return self.signature_from_shingles(self.shingles(text))

    def signature_from_shingles(self, shingles: Iterable[str]) -> MinHashSignature:
        mins = [MAX_HASH] * self.num_hashes
        for shingle in shingles:
            base = zlib.crc32(shingle.encode("utf-8"))
            for i, (a, b) in enumerate(self._coefficients):
                value = ((a * base + b) % MERSENNE_PRIME) & MAX_HASH
                if value < mins[i]:
                    mins[i] = value
        return MinHashSignature(tuple(mins), self.shingle_size, self.num_hashes)

    @staticmethod
    def similarity(a: MinHashSignature, b: MinHashSignature) -> float:
        """Estimated Jaccard similarity: the fraction of agreeing slots, in [0, 1]."""
        if a.num_hashes != b.num_hashes or len(a.hashes) != len(b.hashes):
            raise ValueError("signatures must have the same number of hashes")
        if a.num_hashes == 0:
            return 1.0
        matches = sum(1 for x, y in zip(a.hashes, b.hashes) if x == y)
        return matches / a.num_hashes

    @classmethod
    def is_duplicate(
        cls, a: MinHashSignature, b: MinHashSignature, threshold: float = 0.85
    ) -> bool:
        return cls.similarity(a, b) >= threshold

    @staticmethod
    def serialize(signature: MinHashSignature) -> str:
        return json.dumps(
            {
                "hashes": list(signature.hashes),
                "shingleSize": signature.shingle_size,
                "numHashes": signature.num_hashes,
            },
            separators=(",", ":"),
        )

    @staticmethod
    def deserialize(raw: str) -> MinHashSignature:
        data = json.loads(raw)
        try:
            return MinHashSignature(
                hashes=tuple(int(h) for h in data["hashes"]),
                shingle_size=int(data["shingleSize"]),
                num_hashes=int(data["numHashes"]),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"malformed MinHash signature: {exc}") from exc
