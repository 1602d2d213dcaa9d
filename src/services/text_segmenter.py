"""Segmentation of extracted text into bounded, tagged chunks.

Pipeline for one block of extracted text:

1. normalize whitespace and line breaks (blank lines are kept as section
   boundaries);
2. split on blank lines into sections;
3. keep sections up to ``max_paragraph_length`` whole;
4. re-split longer sections into sentences and pack them greedily into
   chunks of at most ``max_sentence_chunk_length`` characters, seeding each
   new chunk with the last two sentences of the previous one;
5. drop chunks shorter than ``min_text_length``;
6. prepend bracketed category markers for deadlines/dates, contact details
   and submission-format language.

The only case a chunk can exceed ``max_sentence_chunk_length`` is when the
two carried-over sentences plus the next sentence are already longer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog

from src.config.app_config import TextProcessingConfig
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

MARKER_DEADLINES = "[FRISTEN/TERMINE]"
MARKER_CONTACT = "[KONTAKT]"
MARKER_SUBMISSION = "[EINREICHUNG]"

# Sentences carried into the next chunk of a split section.
_OVERLAP_SENTENCES = 2

# A sentence ends at . ! or ? followed by whitespace or the end of text.
_SENTENCE_END = re.compile(r"[.!?](?:\s|$)")


def normalize_text(text: str) -> str:
    """Normalize line endings and whitespace, keeping paragraph breaks.

    CRLF/CR become LF, runs of spaces and tabs collapse to one space,
    whitespace-only lines become empty and three or more line breaks
    collapse to one blank line.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+", " ", text)          # collapse horizontal runs
    text = re.sub(r" *\n *", "\n", text)         # trim around line breaks
    text = re.sub(r"\n{3,}", "\n\n", text)       # at most one blank line
    return text.strip()


@dataclass(frozen=True)
class TextMetadata:
    """Dates, contact details and deadline sentences found in a text."""

    dates: list[str] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)
    phones: list[str] = field(default_factory=list)
    deadlines: list[str] = field(default_factory=list)


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(v for v in values if v))


def extract_text_metadata(text: str, config: TextProcessingConfig) -> TextMetadata:
    """Scan *text* for dates, e-mails, phone numbers and deadline sentences.

    A deadline sentence is the period-delimited span around any configured
    deadline keyword (case-insensitive).  Every list is de-duplicated in
    order of first appearance.
    """
    deadlines: list[str] = []
    for keyword in config.deadline_keywords:
        # Widest run of non-period characters around the keyword.
        pattern = re.compile(rf"[^.]*{re.escape(keyword)}[^.]*", re.IGNORECASE)
        deadlines.extend(m.group().strip() for m in pattern.finditer(text))

    return TextMetadata(
        dates=_unique(re.findall(config.date_regex, text)),
        emails=_unique(re.findall(config.email_regex, text)),
        phones=_unique(m.strip() for m in re.findall(config.phone_regex, text)),
        deadlines=_unique(deadlines),
    )


@dataclass(frozen=True)
class TextChunk:
    """One segment of text ready for embedding.

    ``text`` carries the category markers; ``body`` is the chunk without
    them.
    """

    text: str
    body: str
    categories: tuple[str, ...] = ()


class TextSegmenter:
    """Turns extracted text into an ordered list of :class:`TextChunk`."""

    def __init__(self, config: TextProcessingConfig) -> None:
        self._config = config
        self._max_section = config.max_paragraph_length
        self._max_chunk = config.max_sentence_chunk_length
        self._min_length = config.min_text_length
        self._section_split = re.compile(config.paragraph_split_regex)
        # "z.B." or "Nr." must not end a sentence; see split_sentences.
        self._abbreviations = [
            re.compile(rf"\b{re.escape(abbr)}\.") for abbr in config.abbreviations
        ]
        self._submission_keywords = [k.lower() for k in config.submission_keywords]

    def segment(self, text: str) -> list[TextChunk]:
        """Segment *text* in reading order."""
        normalized = normalize_text(text)
        if not normalized:
            return []

        bodies: list[str] = []
        for section in self.split_sections(normalized):
            # Short sections stay whole; only long ones are re-split.
            if len(section) <= self._max_section:
                bodies.append(section)
            else:
                bodies.extend(self.pack_sentences(self.split_sentences(section)))

        # Length is checked before markers are added.
        chunks = [self._tag(body) for body in bodies if len(body) >= self._min_length]
        logger.debug(
            "text_segmented",
            input_length=len(text),
            sections=len(bodies),
            chunks=len(chunks),
            dropped=len(bodies) - len(chunks),
        )
        return chunks

    def split_sections(self, text: str) -> list[str]:
        """Split on blank-line boundaries, discarding empty sections."""
        return [s.strip() for s in self._section_split.split(text) if s.strip()]

    def split_sentences(self, text: str) -> list[str]:
        """Split *text* at sentence boundaries while respecting abbreviations.

        Periods of known abbreviations are masked with a same-length
        placeholder so indices stay aligned with the original text.
        """
        masked = text
        for pattern in self._abbreviations:
            masked = pattern.sub(lambda m: m.group().replace(".", "\x00"), masked)

        sentences: list[str] = []
        last = 0
        # Boundaries are found in the masked copy but sliced from the
        # original, so abbreviations keep their periods.
        for match in _SENTENCE_END.finditer(masked):
            end = match.end()
            sentence = text[last:end].strip()
            if sentence:
                sentences.append(sentence)
            last = end

        # Trailing text without closing punctuation is its own sentence.
        remainder = text[last:].strip()
        if remainder:
            sentences.append(remainder)
        return sentences if sentences else [text.strip()]

    def pack_sentences(self, sentences: list[str]) -> list[str]:
        """Greedily pack sentences into chunks with a two-sentence overlap.

        A chunk is only closed once it holds at least one sentence that was
        not carried over, so no chunk consists purely of overlap.
        """
        chunks: list[str] = []
        current: list[str] = []
        # Sentences in `current` that were not carried over from the previous
        # chunk.  A chunk with fresh == 0 is pure overlap and is never emitted.
        fresh = 0
        for sentence in sentences:
            candidate = " ".join([*current, sentence])
            if fresh and len(candidate) > self._max_chunk:
                chunks.append(" ".join(current))
                # Seed the next chunk with the tail of this one.
                current = [*current[-_OVERLAP_SENTENCES:], sentence]
                fresh = 1
            else:
                current.append(sentence)
                fresh += 1
        if fresh:
            chunks.append(" ".join(current))
        return chunks

    def categorize(self, text: str) -> tuple[str, ...]:
        """Return the category markers that apply to *text*, in fixed order."""
        meta = extract_text_metadata(text, self._config)
        lowered = text.lower()
        categories: list[str] = []
        if meta.dates or meta.deadlines:
            categories.append(MARKER_DEADLINES)
        if meta.emails or meta.phones:
            categories.append(MARKER_CONTACT)
        if any(keyword in lowered for keyword in self._submission_keywords):
            categories.append(MARKER_SUBMISSION)
        # Marker order is fixed: deadlines, contact, submission.
        return tuple(categories)

    def _tag(self, body: str) -> TextChunk:
        categories = self.categorize(body)
        text = f"{' '.join(categories)} {body}" if categories else body
        return TextChunk(text=text, body=body, categories=categories)
