"""
Content Processor

Turns a page from the content repository into the normalized bag of terms
the TF-IDF index is built from.

Tokenizer rules
---------------
1. Text = title twice (meta title preferred), meta description, body.
2. Body is HTML (script/style/noscript contents dropped, tags removed,
   entities decoded) or structured JSON whose strings are collected
   depth-first.
3. Lower-case; URLs, e-mail addresses and standalone numbers removed; every
   character outside a-z becomes a space.
4. Tokens of 3..50 letters that are not stopwords are kept. No stemming.

These rules define the corpus. Changing them invalidates every stored term
count, so the index must be cleared and rebuilt afterwards.
"""

from __future__ import annotations

import hashlib
import html
import re
from collections import Counter
from html.parser import HTMLParser
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .models import ProcessedContent
from ..content.models import SourceDocument


MIN_WORD_LENGTH = 3
MAX_WORD_LENGTH = 50

STOPWORDS: FrozenSet[str] = frozenset(
    """
    a about above after again against all am an and any are aren't as at be
    because been before being below between both but by can't cannot could
    couldn't did didn't do does doesn't doing don't down during each few for
    from further had hadn't has hasn't have haven't having he he'd he'll he's
    her here here's hers herself him himself his how how's i i'd i'll i'm i've
    if in into is isn't it it's its itself let's me more most mustn't my myself
    no nor not of off on once only or other ought our ours ourselves out over
    own same shan't she she'd she'll she's should shouldn't so some such than
    that that's the their theirs them themselves then there there's these they
    they'd they'll they're they've this those through to too under until up
    very was wasn't we we'd we'll we're we've were weren't what what's when
    when's where where's which while who who's whom why why's with won't would
    wouldn't you you'd you'll you're you've your yours yourself yourselves
    also just like now get got can will make made one two first new way may
    well back even want give use find tell ask work seem feel try leave call
    keep let begin help show hear play run move live believe hold bring happen
    write provide sit stand lose pay meet include continue set learn change
    lead understand watch follow stop create speak read allow add spend grow
    open walk win offer remember love consider appear buy wait serve die send
    expect build stay fall cut reach kill remain click please website page post
    article share comment comments
    """.split()
)

_SKIPPED_TAGS = ("script", "style", "noscript")

_URL_RE = re.compile(r"https?://\S+")
_EMAIL_RE = re.compile(r"[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}")
_NUMBER_RE = re.compile(r"\b\d+\b")
_NON_LETTER_RE = re.compile(r"[^a-z'\s]")
_CURLY_APOSTROPHE_RE = re.compile(r"[\u2018\u2019]")
_WHITESPACE_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]+>")


class _TextExtractor(HTMLParser):
    """Extract plain text from HTML, stripping all tags."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._parts: List[str] = []
        self._skip = 0

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        if tag in _SKIPPED_TAGS:
            self._skip += 1

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIPPED_TAGS and self._skip:
            self._skip -= 1

    def handle_data(self, data: str) -> None:
        if not self._skip:
            self._parts.append(data)

    def get_text(self) -> str:
        return " ".join(self._parts)


def strip_html(markup: str) -> str:
    """Return the visible text of an HTML fragment."""
    parser = _TextExtractor()
    try:
        parser.feed(markup)
        parser.close()
    except AssertionError:
        # HTMLParser asserts on some malformed declarations
        return html.unescape(_TAG_RE.sub(" ", markup))
    return parser.get_text()


def _collect_strings(value: Any, out: List[str]) -> None:
    if isinstance(value, str):
        out.append(value)
    elif isinstance(value, dict):
        for item in value.values():
            _collect_strings(item, out)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _collect_strings(item, out)


def extract_text(content: Any) -> str:
    """
    Extract indexable text from a page body.

    Strings are treated as HTML; dicts and lists are walked and every nested
    string (itself possibly HTML) is collected.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return strip_html(content)

    strings: List[str] = []
    _collect_strings(content, strings)
    return " ".join(strip_html(s) for s in strings)


class ContentProcessor:
    """
    Tokenizer and term counter for indexed pages.

    Stateless apart from its stopword list, so one instance can be shared.
    """

    def __init__(self, extra_stopwords: Iterable[str] = ()) -> None:
        self._stopwords = STOPWORDS | frozenset(w.lower() for w in extra_stopwords)

    def is_valid_token(self, token: str) -> bool:
        if len(token) < MIN_WORD_LENGTH or len(token) > MAX_WORD_LENGTH:
            return False
        return token not in self._stopwords

    def preprocess_text(self, text: str) -> List[str]:
        """
        Normalize raw text and split it into index terms.
        """
        text = html.unescape(text).lower()
        text = _URL_RE.sub(" ", text)
        text = _EMAIL_RE.sub(" ", text)
        text = _NUMBER_RE.sub(" ", text)
        text = _CURLY_APOSTROPHE_RE.sub("'", text)
        text = _NON_LETTER_RE.sub(" ", text)

        tokens = []
        for raw in text.split():
            token = self._strip_apostrophes(raw)
            if token and self.is_valid_token(token):
                tokens.append(token)
        return tokens

    def _strip_apostrophes(self, raw: str) -> str:
        # Contractions are matched whole against the stopwords; anything
        # else loses a possessive "'s" and its remaining apostrophes.
        word = raw.strip("'")
        if word in self._stopwords:
            return ""
        if word.endswith("'s"):
            word = word[:-2]
        return word.replace("'", "")

    @staticmethod
    def content_hash(text: str) -> str:
        """
        Hash of the normalized text, used to spot content that changed after
        it was indexed.
        """
        normalized = _WHITESPACE_RE.sub(" ", text.lower()).strip()
        return hashlib.sha256(normalized.encode("utf-8")).hexdigest()

    @staticmethod
    def compose_text(page: SourceDocument) -> str:
        title = page.display_title
        parts = [title, title]
        if page.meta_description:
            parts.append(page.meta_description)
        body = extract_text(page.content)
        if body:
            parts.append(body)
        return " ".join(p for p in parts if p)

    @staticmethod
    def term_counts(tokens: List[str]) -> Dict[str, int]:
        return dict(Counter(tokens))

    @staticmethod
    def top_terms(counts: Dict[str, int], limit: int) -> Dict[str, int]:
        """
        Keep the `limit` most frequent terms; ties are broken alphabetically
        so the cap is deterministic.
        """
        if limit <= 0:
            return {}
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return dict(ranked[:limit])

    def process(self, page: SourceDocument, max_terms: int) -> ProcessedContent:
        """
        Tokenize a page and cap its term map to `max_terms` terms.
        """
        text = self.compose_text(page)
        tokens = self.preprocess_text(text)
        counts = self.term_counts(tokens)

        return ProcessedContent(
            page_id=page.id,
            url=page.url,
            title=page.display_title,
            word_count=len(tokens),
            content_hash=self.content_hash(text),
            term_counts=self.top_terms(counts, max_terms),
            distinct_terms=len(counts),
        )
