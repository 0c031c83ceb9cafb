"""
Tag canonicalization for stored and rendered image metadata.
"""

from typing import Iterable, List, Optional, Union


def normalize_tags(raw_tags: Optional[Union[str, Iterable[str]]]) -> List[str]:
    """Turn raw tags into a sorted, lowercase, de-duplicated list.

    Accepts either the comma-separated storage form or a list of tags as the
    model returns it. List elements are split on commas as well, so
    ``["Dog,dog"]`` contributes a single ``"dog"``.
    """
    if raw_tags is None:
        return []
    if isinstance(raw_tags, str):
        raw_tags = [raw_tags]

    unique_tags = set()
    for element in raw_tags:
        if element is None:
            continue
        for part in str(element).split(","):
            tag = part.strip().lower()
            if tag:
                unique_tags.add(tag)

    return sorted(unique_tags)


def join_tags(raw_tags: Optional[Union[str, Iterable[str]]]) -> str:
    """Canonical comma-joined storage form of a tag collection."""
    return ",".join(normalize_tags(raw_tags))
