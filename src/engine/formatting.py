"""Persona text normalisation and platform thread splitting."""

import re

TWITTER_MAX_LENGTH = 280

_WHITESPACE = re.compile(r"\s+")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
_URL = re.compile(r"https?://\S+")
_CITATION_MARKER = re.compile(r"\[\d+\]")
_HASHTAG = re.compile(r"(?<!\w)#(?!throp\b)\w+", re.IGNORECASE)

FORMAL_CONNECTORS = {
    "however": "but",
    "therefore": "so",
    "furthermore": "also",
    "moreover": "also",
    "additionally": "also",
    "nevertheless": "still",
}


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _lowercase_outside_urls(text: str) -> str:
    parts = []
    last = 0
    for match in _URL.finditer(text):
        parts.append(text[last:match.start()].lower())
        parts.append(match.group(0))
        last = match.end()
    parts.append(text[last:].lower())
    return "".join(parts)


def ensure_persona_formatting(text: str) -> str:
    """Force the house style: lowercase, no em dashes, casual connectors.

    Citation markers like [1] and hashtags other than #throp are dropped.
    URLs keep their case.
    """
    text = _CITATION_MARKER.sub("", text)
    text = text.replace("—", "...").replace("–", "...")
    text = _HASHTAG.sub("", text)
    for formal, casual in FORMAL_CONNECTORS.items():
        text = re.sub(rf"\b{formal}\b", casual, text, flags=re.IGNORECASE)
    text = _lowercase_outside_urls(text)
    return normalize_whitespace(text)


def split_sentences(text: str) -> list[str]:
    """Split on . ! ? followed by whitespace; the trailing fragment is kept."""
    return [s for s in _SENTENCE_BREAK.split(normalize_whitespace(text)) if s]


def _split_words(sentence: str, budget: int) -> list[str]:
    pieces: list[str] = []
    current = ""
    for word in sentence.split(" "):
        if len(word) > budget:
            if current:
                pieces.append(current)
                current = ""
            pieces.extend(word[i:i + budget] for i in range(0, len(word), budget))
            continue
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= budget:
            current = candidate
        else:
            pieces.append(current)
            current = word
    if current:
        pieces.append(current)
    return pieces


def _pack(sentences: list[str], budget: int) -> list[str]:
    chunks: list[str] = []
    current = ""
    for sentence in sentences:
        pieces = [sentence] if len(sentence) <= budget else _split_words(sentence, budget)
        for piece in pieces:
            candidate = f"{current} {piece}" if current else piece
            if len(candidate) <= budget:
                current = candidate
            else:
                chunks.append(current)
                current = piece
    if current:
        chunks.append(current)
    return chunks


def _prefix(index: int, total: int) -> str:
    return f"[{index}/{total}] "


def format_for_platform(text: str, max_length: int = TWITTER_MAX_LENGTH) -> list[str]:
    """Split text into parts that each fit max_length.

    Text already within the limit comes back unchanged as a single part.
    Longer text is split on sentence boundaries, then on words for
    oversized sentences. Parts are numbered "[i/n] " only when there is more
    than one, and the packing budget reserves room for that prefix.
    """
    if len(text) <= max_length:
        return [text]

    normalized = normalize_whitespace(text)
    if len(normalized) <= max_length:
        return [normalized]

    sentences = split_sentences(normalized)
    digits = 1
    while True:
        widest = "9" * digits
        budget = max_length - len(_prefix(int(widest), int(widest)))
        if budget < 1:
            raise ValueError(f"max_length {max_length} too small to number parts")
        chunks = _pack(sentences, budget)
        if len(str(len(chunks))) <= digits:
            break
        digits += 1

    if len(chunks) == 1:
        return chunks
    total = len(chunks)
    return [_prefix(i, total) + chunk for i, chunk in enumerate(chunks, 1)]


def strip_part_prefix(part: str) -> str:
    """Inverse of the numbering applied by format_for_platform."""
    return re.sub(r"^\[\d+/\d+\] ", "", part)
