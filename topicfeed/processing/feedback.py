from dataclasses import replace

from topicfeed.models import AITopic

MAX_EXAMPLES = 10


def _push(examples: list[str], article_id: str) -> list[str]:
    return [*examples, article_id][-MAX_EXAMPLES:]


def record_feedback(topic: AITopic, article_id: str, positive: bool) -> AITopic:
    """Return a copy of ``topic`` with the article appended to its exemplar ring buffer."""
    if positive:
        return replace(topic, positive_examples=_push(topic.positive_examples, article_id))
    return replace(topic, negative_examples=_push(topic.negative_examples, article_id))
