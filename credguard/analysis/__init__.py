"""
Analysis module - Breach screening and similarity scans over decrypted secrets.
"""

from credguard.analysis.breach import BreachDetector, BreachResult
from credguard.analysis.similarity import (
    DecryptedEntry,
    SimilarityAnalyzer,
    are_similar,
    has_common_pattern,
    levenshtein,
    similarity,
)
from credguard.analysis.vault_scan import DuplicateResolution, VaultAnalyzer, VaultReport

__all__ = [
    "BreachDetector",
    "BreachResult",
    "DecryptedEntry",
    "SimilarityAnalyzer",
    "are_similar",
    "has_common_pattern",
    "levenshtein",
    "similarity",
    "VaultAnalyzer",
    "VaultReport",
    "DuplicateResolution",
]
