"""Tests for the topic feedback ledger."""

from topicfeed.models import AITopic
from topicfeed.processing.feedback import MAX_EXAMPLES, record_feedback


def test_positive_and_negative_lists() -> None:
    """Test feedback lands in the matching list and the input topic is untouched."""
    topic = AITopic(id="t", name="T")
    liked = record_feedback(topic, "a1", positive=True)
    disliked = record_feedback(liked, "a2", positive=False)
    assert topic.positive_examples == []
    assert disliked.positive_examples == ["a1"]
    assert disliked.negative_examples == ["a2"]


def test_keeps_last_ten() -> None:
    """Test the oldest exemplars fall off past ten entries."""
    topic = AITopic(id="t", name="T")
    for i in range(13):
        topic = record_feedback(topic, f"a{i}", positive=True)
    assert len(topic.positive_examples) == MAX_EXAMPLES
    assert topic.positive_examples[0] == "a3"
    assert topic.positive_examples[-1] == "a12"
