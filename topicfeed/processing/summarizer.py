"""On-demand article summaries and explanations."""

from topicfeed.models import Article
from topicfeed.processing.responses import parse_summary_response

SUMMARY_CONTENT_MAX = 8000
EXPLAIN_CONTENT_MAX = 6000
QUESTION_CONTEXT_ARTICLES = 10

SUMMARY_PROMPT = """\
Summarize this article:

Title: {title}

Content:
{content}

Provide two summaries:
1. SHORT: A 1-2 sentence TL;DR
2. DETAILED: 3-5 bullet points with key information

Format your response as:
SHORT: [your short summary]
DETAILED:
• [point 1]
• [point 2]
• [point 3]
"""

EXPLAIN_MODES = {
    "beginner": (
        "Explain this article as if I'm a beginner who doesn't know the technical terms. "
        "Use simple language and analogies."
    ),
    "risks-opportunities": """\
Analyze this article and identify the key risks and opportunities mentioned. Format as:

RISKS:
• [risk 1]
• [risk 2]

OPPORTUNITIES:
• [opportunity 1]
• [opportunity 2]""",
}


def _article_text(article: Article) -> str:
    return article.content_text or article.summary


def summarize_article(completion, article: Article) -> tuple[str, str]:
    """Returns (short, detailed) summaries."""
    prompt = SUMMARY_PROMPT.format(
        title=article.title, content=_article_text(article)[:SUMMARY_CONTENT_MAX],
    )
    response = completion.complete(
        "You are a helpful assistant that summarizes articles. Provide clear, concise summaries.",
        prompt,
        max_tokens=500,
    )
    return parse_summary_response(response)


def explain_article(completion, article: Article, mode: str = "beginner") -> str:
    if mode not in EXPLAIN_MODES:
        raise ValueError(f"Unknown explain mode: {mode!r} (expected one of {', '.join(EXPLAIN_MODES)})")
    prompt = f"Article: {article.title}\n\n{_article_text(article)[:EXPLAIN_CONTENT_MAX]}\n\n{EXPLAIN_MODES[mode]}"
    return completion.complete(
        "You are a helpful assistant that explains complex topics clearly.", prompt, max_tokens=600,
    )


def ask_about_articles(completion, question: str, articles: list[Article]) -> str:
    """Answer a question using up to ten articles as cited context."""
    context = "\n\n".join(
        f"[{i + 1}] {a.title}\n{a.summary[:300]}"
        for i, a in enumerate(articles[:QUESTION_CONTEXT_ARTICLES])
    )
    system = (
        "You are a helpful assistant that answers questions based on provided news articles.\n"
        "Cite articles by their number when relevant. Be concise but thorough.\n"
        "If the articles don't contain enough information to answer, say so."
    )
    return completion.complete(system, f"Based on these articles:\n\n{context}\n\nQuestion: {question}", max_tokens=800)
