"""
Choice shuffling service
Per-learner permutations of answer choices and their inverse for scoring
"""
import logging
import random
from typing import List, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ShuffleService:
    """
    Produces choice mappings where mapping[display_position] = canonical_index.

    Every call draws from its own OS-seeded generator unless one is injected,
    so concurrent compositions never share RNG state. Mappings are persisted
    verbatim and never regenerated.
    """

    def shuffle(self, n: int, rng: Optional[random.Random] = None) -> List[int]:
        """
        Fisher-Yates shuffle of range(n)

        Args:
            n: Number of choices (>= 0)
            rng: Optional generator, for reproducible tests

        Returns:
            Permutation of 0..n-1
        """
        if n < 0:
            raise ValueError(f"choice count must be >= 0, got {n}")

        rng = rng or random.SystemRandom()
        indices = list(range(n))
        for i in range(n - 1, 0, -1):
            j = rng.randint(0, i)
            indices[i], indices[j] = indices[j], indices[i]
        return indices

    def is_valid_mapping(self, mapping: Optional[Sequence[int]], n: int) -> bool:
        """True if mapping is a permutation of 0..n-1"""
        if mapping is None or len(mapping) != n:
            return False
        return sorted(mapping) == list(range(n))

    def resolve(self, mapping: Optional[Sequence[int]], n: int) -> Tuple[List[int], bool]:
        """
        Mapping to use for a question that currently has n choices

        Returns (mapping, malformed). A stored mapping that is not a
        permutation of 0..n-1 falls back to canonical order.
        """
        if self.is_valid_mapping(mapping, n):
            return list(mapping), False
        return list(range(n)), True

    def apply(self, canonical: Sequence[T], mapping: Sequence[int]) -> List[T]:
        """Reorder canonical choices into display order"""
        return [canonical[idx] for idx in mapping]

    def to_canonical(self, mapping: Sequence[int], shown_index: Optional[int]) -> Optional[int]:
        """
        Map a displayed index back to its canonical index

        Returns None when the shown index is missing or out of range
        """
        if shown_index is None or not 0 <= shown_index < len(mapping):
            return None
        return mapping[shown_index]

    def to_display(self, mapping: Sequence[int], canonical_index: int) -> Optional[int]:
        """Position at which a canonical choice is displayed"""
        try:
            return list(mapping).index(canonical_index)
        except ValueError:
            return None


# Global instance
shuffle_service = ShuffleService()
