"""Tolerant parsers for the line-oriented completion responses.

Lines or fragments that do not match the expected grammar are ignored
rather than treated as errors; the model output is never trusted to be
well formed.
"""

import re

from topicfeed.models import Classification

# [index]: <topic names, or "none"> | <score>
_CLASSIFICATION_LINE = re.compile(r"^\s*(?:[-*]\s*)?\[(\d+)\]\s*:\s*(.+?)\s*\|\s*(\d+)")
_DUPLICATES = re.compile(r"(?<!NOT_)DUPLICATES:[ \t]*\[?([\d, \t]+)", re.IGNORECASE)
_SHORT = re.compile(r"SHORT:\s*(.+?)(?=DETAILED:|$)", re.DOTALL)
_DETAILED = re.compile(r"DETAILED:\s*(.+)", re.DOTALL)


def parse_classification_response(text: str, batch_size: int) -> dict[int, Classification]:
    """Map 0-based batch positions to their labels and score.

    Out-of-range indices are dropped, ``none`` (any case) means no labels,
    and scores are clamped to 0-100. A repeated index keeps the last line.
    """
    results: dict[int, Classification] = {}
    for line in (text or "").splitlines():
        match = _CLASSIFICATION_LINE.match(line)
        if not match:
            continue
        idx = int(match.group(1)) - 1
        if not 0 <= idx < batch_size:
            continue
        topics_str = match.group(2).strip()
        if topics_str.lower() == "none":
            labels = []
        else:
            labels = [t.strip().strip("\"'").strip() for t in topics_str.split(",")]
            labels = [t for t in labels if t and t.lower() != "none"]
        score = max(0, min(100, int(match.group(3))))
        results[idx] = Classification(labels=labels, score=score)
    return results


def parse_duplicates_response(text: str, group_size: int) -> list[int]:
    """0-based positions listed after ``DUPLICATES:``, primary first.

    ``NOT_DUPLICATES``, a missing list, out-of-range and repeated numbers
    all contribute nothing.
    """
    match = _DUPLICATES.search(text or "")
    if not match:
        return []
    positions: list[int] = []
    for number in re.findall(r"\d+", match.group(1)):
        idx = int(number) - 1
        if 0 <= idx < group_size and idx not in positions:
            positions.append(idx)
    return positions


def parse_summary_response(text: str) -> tuple[str, str]:
    short = _SHORT.search(text or "")
    detailed = _DETAILED.search(text or "")
    return (
        short.group(1).strip() if short else "Summary unavailable",
        detailed.group(1).strip() if detailed else "Details unavailable",
    )
