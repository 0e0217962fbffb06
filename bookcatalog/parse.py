"""Split and normalize free-text genre/tag submissions."""
import re
from typing import Iterable, List, Optional

# Any run of characters that is neither a word character nor a hyphen
LABEL_DELIMITER = re.compile(r"[^\w-]+")


def split_labels(raw_text: Optional[str]) -> List[str]:
    """
    Split delimited genre/tag text into labels.

    Empty strings are kept where the text starts or ends with a
    delimiter, so callers must filter them (see ``clean_labels``).

    Args:
        raw_text: Text as submitted, e.g. "Fantasy, Adventure; Sci-Fi"

    Returns:
        Labels in input order, or an empty list if there is no text
    """
    if raw_text is None:
        return []

    return LABEL_DELIMITER.split(raw_text)


def clean_labels(labels: Iterable[str]) -> List[str]:
    """
    Strip labels and drop empty ones.

    Args:
        labels: Labels as produced by ``split_labels``

    Returns:
        Non-empty labels in input order
    """
    cleaned = []

    for label in labels:
        label = label.strip()
        if label:
            cleaned.append(label)

    return cleaned


def deduplicate_labels(labels: Iterable[str]) -> List[str]:
    """
    Remove repeated labels, keeping the first occurrence.

    Matching is exact and case-sensitive, like entity lookup.

    Args:
        labels: Labels in input order

    Returns:
        Deduplicated list of labels
    """
    seen = set()
    unique_labels = []

    for label in labels:
        if label not in seen:
            seen.add(label)
            unique_labels.append(label)

    return unique_labels
