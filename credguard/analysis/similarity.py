"""
Password Similarity
===================

Edit-distance similarity between secrets and vault-wide duplicate,
reuse and near-duplicate scans.

The pairwise scan is O(n^2) in the number of entries. SimilarityAnalyzer
refuses windows larger than its configured bound; callers page through
larger vaults with offset/limit.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Final, List, Optional, Pattern, Sequence

from credguard.core.config import SimilarityConfig
from credguard.core.constants import (
    COMMON_PATTERN_MIN_BASE,
    COMMON_PATTERN_THRESHOLD,
    DEFAULT_SIMILARITY_THRESHOLD,
)
from credguard.core.errors import ScanLimitExceeded
from credguard.core.logging import get_secure_logger

logger = get_secure_logger(__name__)

_TRAILING_DIGITS: Final[Pattern[str]] = re.compile(r"\d+$")


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit cost insert, delete and substitute."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1 - distance / longest length, clamped to [0, 1]. Identical strings score 1.0."""
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    return max(0.0, 1.0 - levenshtein(a, b) / longest)


def are_similar(a: str, b: str, threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> bool:
    return a == b or similarity(a, b) >= threshold


def has_common_pattern(a: str, b: str) -> bool:
    """
    Whether two secrets look like variations of one another.

    True if both share the same base of at least four characters once a
    trailing run of digits is removed ("Password1" / "Password2"), or if
    they are at least 75% similar.
    """
    base_a = _TRAILING_DIGITS.sub("", a)
    base_b = _TRAILING_DIGITS.sub("", b)
    if len(base_a) >= COMMON_PATTERN_MIN_BASE and base_a == base_b:
        return True
    return are_similar(a, b, COMMON_PATTERN_THRESHOLD)


@dataclass(frozen=True, slots=True)
class DecryptedEntry:
    """A credential's plaintext secret held in memory for analysis only."""
    credential_id: str
    name: str
    username: str
    secret: str = field(repr=False)
    url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SecretGroup:
    """Credentials sharing one secret. The secret itself is not carried."""
    entries: List[DecryptedEntry]

    @property
    def count(self) -> int:
        return len(self.entries)

    @property
    def credential_ids(self) -> List[str]:
        return [e.credential_id for e in self.entries]


@dataclass(frozen=True, slots=True)
class SimilarGroup:
    entries: List[DecryptedEntry]
    average_similarity: float

    @property
    def credential_ids(self) -> List[str]:
        return [e.credential_id for e in self.entries]


def _group_by(entries: Sequence[DecryptedEntry], normalize: bool) -> List[SecretGroup]:
    groups: Dict[str, List[DecryptedEntry]] = defaultdict(list)
    for entry in entries:
        key = entry.secret.strip() if normalize else entry.secret
        groups[key].append(entry)
    return [SecretGroup(entries=members) for members in groups.values() if len(members) > 1]


def find_duplicates(entries: Sequence[DecryptedEntry]) -> List[SecretGroup]:
    """Groups of two or more entries whose secrets match after trimming whitespace."""
    return _group_by(entries, normalize=True)


def find_reused(entries: Sequence[DecryptedEntry]) -> List[SecretGroup]:
    """Groups of two or more entries whose secrets match exactly."""
    return _group_by(entries, normalize=False)


def _average_similarity(group: Sequence[DecryptedEntry]) -> float:
    total = 0.0
    comparisons = 0
    for i in range(len(group)):
        for j in range(i + 1, len(group)):
            total += similarity(group[i].secret, group[j].secret)
            comparisons += 1
    return total / comparisons if comparisons else 0.0


def find_similar(
    entries: Sequence[DecryptedEntry],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> List[SimilarGroup]:
    """
    Greedily cluster entries around the first unclaimed entry.

    Each entry joins at most one group. Groups report the average pairwise
    similarity of their members.
    """
    claimed: set[int] = set()
    groups: List[SimilarGroup] = []

    for i, seed in enumerate(entries):
        if i in claimed:
            continue
        claimed.add(i)
        members = [seed]

        for j in range(i + 1, len(entries)):
            if j in claimed:
                continue
            if are_similar(seed.secret, entries[j].secret, threshold):
                members.append(entries[j])
                claimed.add(j)

        if len(members) > 1:
            groups.append(SimilarGroup(
                entries=members,
                average_similarity=_average_similarity(members),
            ))

    return groups


class SimilarityAnalyzer:
    """
    Bounded vault similarity scans.

    Usage:
        analyzer = SimilarityAnalyzer(config.similarity)
        page = analyzer.find_similar(entries, offset=0, limit=200)
    """

    __slots__ = ("_config",)

    def __init__(self, config: Optional[SimilarityConfig] = None) -> None:
        self._config = config or SimilarityConfig()

    @property
    def threshold(self) -> float:
        return self._config.threshold

    @property
    def max_entries(self) -> int:
        return self._config.max_entries

    def find_duplicates(self, entries: Sequence[DecryptedEntry]) -> List[SecretGroup]:
        return find_duplicates(entries)

    def find_reused(self, entries: Sequence[DecryptedEntry]) -> List[SecretGroup]:
        return find_reused(entries)

    def find_similar(
        self,
        entries: Sequence[DecryptedEntry],
        threshold: Optional[float] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[SimilarGroup]:
        """
        Pairwise similarity scan over entries[offset:offset + limit].

        Raises:
            ScanLimitExceeded: If the window holds more than max_entries
            ValueError: If offset or limit is negative
        """
        if offset < 0 or (limit is not None and limit < 0):
            raise ValueError("offset and limit must be non-negative")

        window = entries[offset:] if limit is None else entries[offset:offset + limit]
        if len(window) > self._config.max_entries:
            raise ScanLimitExceeded(len(window), self._config.max_entries)

        groups = find_similar(window, self._config.threshold if threshold is None else threshold)
        logger.debug("Similarity scan over %d entries found %d group(s)", len(window), len(groups))
        return groups
