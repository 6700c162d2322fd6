"""Heuristic classification of search results.

Every function here is total: any well-formed SearchResult gets an answer,
falling back to a default when no rule matches. The rules are keyword and
substring based and are meant as suggestions, not ground truth.
"""

import re
from typing import List, Tuple

from knowledge_tracker.models.knowledge import Difficulty, SearchResult

ADVANCED_KEYWORDS = [
    "advanced",
    "expert",
    "professional",
    "enterprise",
    "complex",
    "optimization",
]
BEGINNER_KEYWORDS = [
    "beginner",
    "tutorial",
    "introduction",
    "basics",
    "getting started",
    "learn",
]

INTERMEDIATE_DOMAINS = ["github.com", "stackoverflow.com"]
BEGINNER_DOMAINS = ["w3schools.com", "tutorialspoint.com"]

# Checked in order, first match wins
DOMAIN_CATEGORIES: List[Tuple[Tuple[str, ...], str]] = [
    (("github.com",), "Code & Development"),
    (("stackoverflow.com",), "Q&A & Problem Solving"),
    (("wikipedia.org",), "Reference & Encyclopedia"),
    (("youtube.com",), "Video & Tutorials"),
    (("medium.com", "dev.to"), "Articles & Blogs"),
    (("docs.", "documentation"), "Documentation"),
]
TITLE_CATEGORIES: List[Tuple[Tuple[str, ...], str]] = [
    (("tutorial", "guide"), "Tutorials & Guides"),
    (("news", "update"), "News & Updates"),
]
DEFAULT_CATEGORY = "General Knowledge"

TOPIC_VOCABULARY = [
    "javascript",
    "python",
    "react",
    "nodejs",
    "css",
    "html",
    "api",
    "database",
    "machine learning",
    "ai",
    "web development",
    "mobile development",
    "design",
    "security",
    "testing",
    "deployment",
    "cloud",
    "docker",
    "kubernetes",
]

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def _text(result: SearchResult) -> str:
    return f"{result.title} {result.snippet}".lower()


def assess_difficulty(result: SearchResult) -> Difficulty:
    """Keyword scan of title and snippet, then the domain, then intermediate."""
    text = _text(result)
    if any(keyword in text for keyword in ADVANCED_KEYWORDS):
        return Difficulty.advanced
    if any(keyword in text for keyword in BEGINNER_KEYWORDS):
        return Difficulty.beginner

    domain = result.domain.lower()
    if any(d in domain for d in INTERMEDIATE_DOMAINS):
        return Difficulty.intermediate
    if any(d in domain for d in BEGINNER_DOMAINS):
        return Difficulty.beginner

    return Difficulty.intermediate


def categorize(result: SearchResult) -> str:
    domain = result.domain.lower()
    for needles, category in DOMAIN_CATEGORIES:
        if any(needle in domain for needle in needles):
            return category

    title = result.title.lower()
    for needles, category in TITLE_CATEGORIES:
        if any(needle in title for needle in needles):
            return category

    return DEFAULT_CATEGORY


def extract_related_topics(result: SearchResult) -> List[str]:
    """Vocabulary entries that appear as whole tokens in title and snippet."""
    tokens = _TOKEN_RE.findall(_text(result))
    token_set = set(tokens)
    joined = f" {' '.join(tokens)} "

    topics = []
    for topic in TOPIC_VOCABULARY:
        if " " in topic:
            if f" {topic} " in joined:
                topics.append(topic)
        elif topic in token_set:
            topics.append(topic)
    return topics


def identify_prerequisites(result: SearchResult, topic: str) -> List[str]:
    text = _text(result)
    prerequisites = []

    if "advanced" in text or "expert" in text:
        prerequisites.append(f"Basic understanding of {topic}")
    if "api" in text and "basic" not in text:
        prerequisites.append("HTTP and REST concepts")
    if "framework" in text or "library" in text:
        prerequisites.append("Core language knowledge")

    return prerequisites


def suggest_next_steps(result: SearchResult) -> List[str]:
    text = _text(result)
    next_steps = []

    if "tutorial" in text or "guide" in text:
        next_steps.extend(
            ["Practice with hands-on exercises", "Build a small project"]
        )
    if "documentation" in text:
        next_steps.extend(["Try implementing examples", "Explore related features"])
    if "concept" in text or "theory" in text:
        next_steps.extend(
            ["Find practical applications", "Look for real-world examples"]
        )

    return next_steps
