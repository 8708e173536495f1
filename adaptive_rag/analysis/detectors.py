# adaptive_rag/analysis/detectors.py

"""
Structural pattern detectors.

Each function is a pure scan over the raw text. They are independent of
each other and of call order, so any one of them can be replaced (for
example by a real HTML parser) without touching the classifier.
"""

import re
from typing import List, Optional
from urllib.parse import urlparse


_TAG_RE = re.compile(r"<[^>]+>")
_HTML_SECTION_RE = re.compile(r"<(?:section|article|div)[^>]*>", re.IGNORECASE)
_MARKDOWN_SECTION_RE = re.compile(r"^#{2,}\s+.+$", re.MULTILINE)
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_HTML_HEADING_RE = re.compile(r"<h[1-6][^>]*>(.*?)</h[1-6]>", re.IGNORECASE | re.DOTALL)
_MARKDOWN_HEADING_RE = re.compile(r"^#{1,6}\s+(.+)$", re.MULTILINE)
_TITLE_LINE_RE = re.compile(r"^[A-Z][A-Z\s]{10,}$", re.MULTILINE)
_TABLE_RE = re.compile(r"<table|<tr|<td|\|.*\|", re.IGNORECASE)
_LIST_RE = re.compile(r"<ul|<ol|<li|^\s*[-*+]\s|^\s*\d+\.\s", re.IGNORECASE | re.MULTILINE)
_CODE_RE = re.compile(r"<code|<pre|```|`[^`]+`", re.IGNORECASE)
_IMAGE_RE = re.compile(r"<img|!\[.*\]\(|\.jpg|\.png|\.gif|\.svg", re.IGNORECASE)
_HTML_LINK_RE = re.compile(r"<a[^>]*>", re.IGNORECASE)
_MARKDOWN_LINK_RE = re.compile(r"\[.*?\]\(.*?\)")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_VOWEL_RUN_RE = re.compile(r"[aeiouy]+")

LANGUAGE_MARKERS = {
    "en": ["the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"],
    "es": ["el", "la", "de", "que", "y", "a", "en", "un", "es", "se", "no", "te"],
    "fr": ["le", "la", "de", "et", "à", "un", "il", "que", "ne", "se", "ce", "pas"],
    "de": ["der", "die", "das", "und", "in", "den", "von", "zu", "dem", "mit", "sich", "des"],
}


def strip_tags(text: str) -> str:
    return _TAG_RE.sub("", text)


# ============================================================
# CONTENT TYPE SIGNALS
# ============================================================

def looks_like_html(text: str) -> bool:
    return bool(_TAG_RE.search(text))


def looks_like_structured(text: str) -> bool:
    """JSON object, XML document or YAML front matter."""

    stripped = text.strip()

    if stripped.startswith("{") and stripped.endswith("}"):
        return True

    if stripped.startswith("<") and stripped.endswith(">"):
        return True

    return "---" in text and ":" in text


def looks_like_mixed(text: str) -> bool:

    has_html = looks_like_html(text)
    has_structured = looks_like_structured(text)
    has_plain = len(text) > 100 and not has_html and not has_structured

    signals = sum((has_html, has_structured, has_plain))

    return signals >= 2


# ============================================================
# STRUCTURE
# ============================================================

def extract_sections(text: str) -> List[str]:
    """
    HTML sectioning tags, markdown level-2+ headings, and groups of three
    substantial paragraphs. Only sections longer than 100 chars count.
    """

    sections = []

    sections.extend(_HTML_SECTION_RE.findall(text))
    sections.extend(_MARKDOWN_SECTION_RE.findall(text))

    current = []

    for paragraph in _PARAGRAPH_SPLIT_RE.split(text):

        if len(paragraph.strip()) <= 50:
            continue

        current.append(paragraph)

        if len(current) >= 3:
            sections.append("\n\n".join(current).strip())
            current = []

    if current:
        sections.append("\n\n".join(current).strip())

    return [s for s in sections if len(s) > 100]


def extract_headings(text: str) -> List[str]:

    headings = []

    headings.extend(strip_tags(h).strip() for h in _HTML_HEADING_RE.findall(text))
    headings.extend(h.strip() for h in _MARKDOWN_HEADING_RE.findall(text))
    headings.extend(t.strip() for t in _TITLE_LINE_RE.findall(text))

    return [h for h in headings if 5 < len(h) < 100]


def detect_tables(text: str) -> bool:
    return bool(_TABLE_RE.search(text))


def detect_lists(text: str) -> bool:
    return bool(_LIST_RE.search(text))


def detect_code(text: str) -> bool:
    return bool(_CODE_RE.search(text))


def detect_images(text: str) -> bool:
    return bool(_IMAGE_RE.search(text))


def count_links(text: str) -> int:
    return len(_HTML_LINK_RE.findall(text)) + len(_MARKDOWN_LINK_RE.findall(text))


# ============================================================
# METRICS
# ============================================================

def count_words(text: str) -> int:
    return len(strip_tags(text).split())


def detect_language(text: str) -> str:
    """First language with at least three marker words present; default en."""

    words = set(strip_tags(text).lower().split())

    for language, markers in LANGUAGE_MARKERS.items():
        if sum(1 for marker in markers if marker in words) >= 3:
            return language

    return "en"


def extract_domain(url: Optional[str]) -> str:

    if not url:
        return "unknown"

    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return "unknown"

    return hostname or "unknown"


def estimate_syllables(text: str) -> int:
    """Vowel-run count per word; words of three letters or fewer count one."""

    syllables = 0

    for word in re.sub(r"[^a-z\s]", "", text.lower()).split():
        if len(word) <= 3:
            syllables += 1
        else:
            syllables += max(1, len(_VOWEL_RUN_RE.findall(word)))

    return syllables


def readability_score(text: str) -> float:
    """Flesch reading ease, clamped to [0, 100]."""

    sentences = [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]
    words = count_words(text)

    if not sentences or words == 0:
        return 50.0

    syllables = estimate_syllables(text)

    score = (
        206.835
        - 1.015 * (words / len(sentences))
        - 84.6 * (syllables / words)
    )

    return max(0.0, min(100.0, score))
