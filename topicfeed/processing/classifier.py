"""Classify articles against user topics in batched completion calls."""

from __future__ import annotations

import logging
from typing import Optional

from topicfeed.errors import CompletionError
from topicfeed.models import AITopic, Article, Classification
from topicfeed.processing.responses import parse_classification_response

logger = logging.getLogger(__name__)

BATCH_SIZE = 10
SUMMARY_MAX = 200
MAX_EXAMPLES_IN_PROMPT = 3

CLASSIFY_SYSTEM_PROMPT = (
    "You are an AI assistant that classifies news articles into topics. "
    "Be precise and only match articles that clearly relate to the topic."
)

CLASSIFY_PROMPT = """\
Classify these articles into the following topics:

TOPICS:
{topics_text}

ARTICLES:
{articles_text}

For each article, respond with the article number, matching topic names (comma-separated, or "none"), and a relevance score (0-100).
Format: [number]: topics | score

Example:
[1]: AI Research, Cybersecurity Breaches | 85
[2]: none | 0
"""


def _format_topic(topic: AITopic, example_titles: Optional[dict[str, str]] = None) -> str:
    """One prompt line per topic, with its keyword hints and feedback exemplars."""
    keywords = [*topic.criteria.must_contain, *topic.criteria.should_contain]
    line = f'- "{topic.name}" ({topic.type.value}): {topic.description}. Keywords: {", ".join(keywords)}'
    if topic.criteria.must_not_contain:
        line += f". Exclude: {', '.join(topic.criteria.must_not_contain)}"

    if example_titles:
        liked = [example_titles[i] for i in topic.positive_examples if i in example_titles]
        disliked = [example_titles[i] for i in topic.negative_examples if i in example_titles]
        if liked:
            line += "\n    Relevant examples: " + "; ".join(f'"{t}"' for t in liked[-MAX_EXAMPLES_IN_PROMPT:])
        if disliked:
            line += "\n    Not relevant: " + "; ".join(f'"{t}"' for t in disliked[-MAX_EXAMPLES_IN_PROMPT:])
    return line


def _format_article_for_batch(index: int, article: Article) -> str:
    return f'[{index}] "{article.title}"\n{article.summary[:SUMMARY_MAX]}'


def build_classification_prompt(
    batch: list[Article],
    topics: list[AITopic],
    example_titles: Optional[dict[str, str]] = None,
) -> str:
    topics_text = "\n".join(_format_topic(t, example_titles) for t in topics)
    articles_text = "\n\n".join(_format_article_for_batch(i + 1, a) for i, a in enumerate(batch))
    return CLASSIFY_PROMPT.format(topics_text=topics_text, articles_text=articles_text)


def _classify_batch(
    completion,
    batch: list[Article],
    topics: list[AITopic],
    example_titles: Optional[dict[str, str]],
) -> dict[str, Classification]:
    prompt = build_classification_prompt(batch, topics, example_titles)
    response = completion.complete(CLASSIFY_SYSTEM_PROMPT, prompt, max_tokens=500)
    parsed = parse_classification_response(response, len(batch))
    return {batch[idx].id: result for idx, result in parsed.items()}


def classify(
    articles: list[Article],
    topics: list[AITopic],
    completion,
    batch_size: int = BATCH_SIZE,
    example_titles: Optional[dict[str, str]] = None,
) -> dict[str, Classification]:
    """Label and score articles against topics.

    Args:
        articles: Articles to classify.
        topics: User topics; names, types, descriptions and keywords go into the prompt.
        completion: Anything with ``complete(system, user, max_tokens) -> str``.
        batch_size: Articles per completion call.
        example_titles: Article id -> title, used to show feedback exemplars.

    Returns:
        Article id -> Classification. A batch whose call fails is skipped
        (logged, no retry); the remaining batches still run. A missing API
        key raises ConfigurationError before any call is made.
    """
    if not articles or not topics:
        return {}

    batch_size = max(1, batch_size)
    results: dict[str, Classification] = {}
    total = len(articles)
    num_batches = (total + batch_size - 1) // batch_size

    for batch_num in range(num_batches):
        start = batch_num * batch_size
        end = min(start + batch_size, total)
        batch = articles[start:end]
        logger.info(f"  [Classifier] Batch {batch_num + 1}/{num_batches} (articles {start + 1}-{end} of {total})...")
        try:
            batch_results = _classify_batch(completion, batch, topics, example_titles)
        except CompletionError as e:
            logger.warning(f"  [Classifier] Batch {batch_num + 1} failed, skipping: {e}")
            continue

        if len(batch_results) != len(batch):
            logger.info(f"  [Classifier] Batch {batch_num + 1}: parsed {len(batch_results)} of {len(batch)} lines")
        results.update(batch_results)

    return results
