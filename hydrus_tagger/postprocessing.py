"""
Post-processing of model output into Hydrus tags.
"""

from typing import AbstractSet, List, Mapping
from .exceptions import EmptyRatingsError


# Tags whose underscores are part of the glyph and must be kept
KAOMOJIS = frozenset([
    "0_0", "(o)_(o)", "+_+", "+_-", "._.", "<o>_<o>", "<|>_<|>", "=_=", ">_<",
    "3_3", "6_9", ">_o", "@_@", "^_^", "o_o", "u_u", "x_x", "|_|", "||_||",
])


def filter_and_process_tags(
    tags: Mapping[str, float],
    threshold: float,
    kaomojis: AbstractSet[str] = KAOMOJIS,
) -> List[str]:
    """Keep tags scoring strictly above ``threshold``, in vocabulary order.

    Underscores are replaced with spaces unless the tag is in ``kaomojis``.
    """
    processed = []
    for tag, confidence in tags.items():
        if not confidence > threshold:
            continue
        processed.append(tag if tag in kaomojis else tag.replace("_", " "))
    return processed


def get_rating(ratings: Mapping[str, float]) -> str:
    """Return ``rating:<label>`` for the highest scoring rating.

    Ties keep the first label seen. Scores that cannot be ordered against
    the current best (NaN) count as equal and never replace it.
    """
    best_label = None
    best_confidence = None
    for label, confidence in ratings.items():
        if best_label is None or confidence > best_confidence:
            best_label, best_confidence = label, confidence

    if best_label is None:
        raise EmptyRatingsError("Ratings was empty")
    return f"rating:{best_label}"
