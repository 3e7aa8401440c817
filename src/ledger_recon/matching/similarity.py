"""
Text similarity used by every description comparison.
"""

from rapidfuzz.distance import Levenshtein


def normalize_description(text: str) -> str:
    """Lowercase and trim a description for comparison."""
    return (text or "").strip().lower()


def similarity(a: str, b: str) -> float:
    """
    Normalized edit-distance similarity between two strings.

    Computed as ``1 - distance / max(len(a), len(b))`` on the lowercased,
    trimmed strings.

    Args:
        a: First string
        b: Second string

    Returns:
        Similarity between 0.0 and 1.0
    """
    a = normalize_description(a)
    b = normalize_description(b)

    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0

    longest = max(len(a), len(b))
    return 1.0 - (Levenshtein.distance(a, b) / longest)
