"""
Topic filter matching.

Filters use '/' separated segments with two wildcards:
- '+' matches exactly one segment (any content, including empty)
- '#' matches zero or more trailing segments; only valid as the last segment

Example:
    >>> is_matched("sensors/+/humidity", "sensors/t1/humidity")
    True
    >>> is_matched("a/#", "a")
    True
    >>> is_matched("a/b", "a/b/c")
    False
"""

from typing import List

SEPARATOR = '/'
SINGLE_LEVEL = '+'
MULTI_LEVEL = '#'


def is_matched(topic_filter: str, topic: str) -> bool:
    """Return True if a message on `topic` is selected by `topic_filter`."""
    filter_segments = topic_filter.split(SEPARATOR)
    topic_segments = topic.split(SEPARATOR)

    position = 0
    while position < len(filter_segments):
        segment = filter_segments[position]

        if segment == MULTI_LEVEL:
            return position == len(filter_segments) - 1

        if position >= len(topic_segments):
            return False

        if segment != SINGLE_LEVEL and segment != topic_segments[position]:
            return False

        position += 1

    return position == len(topic_segments)


def filter_errors(topic_filter: str) -> List[str]:
    """
    Describe what is wrong with a topic filter.

    Returns:
        Empty list if the filter is valid
    """
    if not topic_filter:
        return ["topic filter is empty"]

    errors = []
    segments = topic_filter.split(SEPARATOR)
    for position, segment in enumerate(segments):
        if MULTI_LEVEL in segment:
            if segment != MULTI_LEVEL:
                errors.append(f"'#' must occupy a whole segment (segment {position})")
            elif position != len(segments) - 1:
                errors.append("'#' is only valid as the last segment")
        if SINGLE_LEVEL in segment and segment != SINGLE_LEVEL:
            errors.append(f"'+' must occupy a whole segment (segment {position})")
    return errors


def is_valid_filter(topic_filter: str) -> bool:
    return not filter_errors(topic_filter)
