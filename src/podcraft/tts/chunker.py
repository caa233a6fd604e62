"""
Script Chunking for TTS Synthesis.

A full episode script is too long for a single TTS request, so it is split
into chunks of consecutive lines. Each chunk becomes one multi-speaker TTS
call; the resulting PCM pieces are joined in chunk order.

Limits per chunk:
    - max_lines: number of script lines
    - max_chars: characters of rendered conversation ("Name: text" lines
      joined by newlines)

A single line too long for max_chars is split into several lines for the
same speaker (the text budget per piece never drops below half of max_chars):
    1. at sentence boundaries (. ! ? …)
    2. then at clause boundaries (, ; :)
    3. then hard-split at max_chars

Example:
    >>> from podcraft.models import ScriptLine
    >>> lines = [ScriptLine("Alex", "Hi!"), ScriptLine("Max", "Hello.")]
    >>> result = chunk_script(lines, max_lines=1)
    >>> [len(c.lines) for c in result.chunks]
    [1, 1]
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Sequence

from podcraft.core.logging import get_logger, verbose, warn
from podcraft.models import ScriptLine
from podcraft.utils.timeit import timeit

_LOG = get_logger("podcraft.chunker")


# =============================================================================
# Regex Patterns for Text Splitting
# =============================================================================

# Sentence boundaries; keeps the delimiter with the sentence. A run of
# delimiters with no text before it ("...and then") is a piece of its own.
_SENT_SPLIT = re.compile(r"([^.!?…]*[.!?…]+|[^.!?…]+$)", re.UNICODE)

# Clause boundaries, for sentences that are still too long
_SOFT_SPLIT = re.compile(r"([^,;:]*[,;:]+|[^,;:]+$)", re.UNICODE)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ScriptChunk:
    """
    A contiguous run of script lines sent to the TTS API in one call.

    Attributes:
        index: Position of the chunk in the script (0-based).
        lines: Lines in script order.
    """
    index: int
    lines: List[ScriptLine]

    @property
    def text(self) -> str:
        return render_conversation(self.lines)

    @property
    def speaker_names(self) -> List[str]:
        seen: List[str] = []
        for line in self.lines:
            if line.speaker_name not in seen:
                seen.append(line.speaker_name)
        return seen


@dataclass
class ChunkResult:
    """
    Result of chunking a script.

    Attributes:
        chunks: Chunks in script order; never empty chunks.
        split_lines: Number of input lines that had to be split.
        timings_s: Timing measurements in seconds.
    """
    chunks: List[ScriptChunk]
    split_lines: int
    timings_s: Dict[str, float]

    @property
    def total_lines(self) -> int:
        return sum(len(c.lines) for c in self.chunks)


# =============================================================================
# Prompt Rendering
# =============================================================================

def render_conversation(lines: Sequence[ScriptLine]) -> str:
    """Render lines as "Name: text", one per line."""
    return "\n".join(line.render() for line in lines)


def build_tts_prompt(title: str, lines: Sequence[ScriptLine]) -> str:
    """
    Build the prompt for one multi-speaker TTS request.

    The speaker names in the conversation must match the names in the
    request's voice config; the model uses them to pick voices.
    """
    return f'TTS the following conversation for a podcast titled "{title}":\n{render_conversation(lines)}'


# =============================================================================
# Chunking
# =============================================================================

def chunk_script(
    lines: Sequence[ScriptLine],
    max_lines: int = 12,
    max_chars: int = 2400,
) -> ChunkResult:
    """
    Group script lines into TTS-sized chunks.

    Args:
        lines: Script lines in order. Lines with empty text are dropped.
        max_lines: Maximum lines per chunk.
        max_chars: Maximum rendered characters per chunk.

    Returns:
        ChunkResult; concatenating every chunk's lines reproduces the
        (split) input in order.

    Raises:
        ValueError: If max_lines or max_chars is not positive.
    """
    if max_lines <= 0 or max_chars <= 0:
        raise ValueError("max_lines and max_chars must be positive")

    timings: Dict[str, float] = {}
    split_count = 0

    with timeit("chunk_script") as t:
        prepared: List[ScriptLine] = []
        for line in lines:
            text = " ".join(line.text.split())
            if not text:
                continue
            candidate = ScriptLine(line.speaker_name, text)
            if len(candidate.render()) <= max_chars:
                prepared.append(candidate)
                continue
            split_count += 1
            budget = _text_budget(line.speaker_name, max_chars)
            prepared.extend(ScriptLine(line.speaker_name, piece) for piece in _split_text(text, budget))

        chunks: List[ScriptChunk] = []
        current: List[ScriptLine] = []
        current_chars = 0

        for line in prepared:
            rendered = len(line.render())
            # +1 for the newline joining it to the previous line
            added = rendered + (1 if current else 0)
            if current and (len(current) >= max_lines or current_chars + added > max_chars):
                chunks.append(ScriptChunk(index=len(chunks), lines=current))
                current, current_chars = [], 0
                added = rendered
            current.append(line)
            current_chars += added

        if current:
            chunks.append(ScriptChunk(index=len(chunks), lines=current))

    timings["chunk_script"] = t.elapsed
    verbose(
        _LOG, "script_chunked",
        lines=len(prepared),
        chunks=len(chunks),
        split_lines=split_count,
        max_lines=max_lines,
        max_chars=max_chars,
        seconds=round(timings["chunk_script"], 4),
    )
    return ChunkResult(chunks=chunks, split_lines=split_count, timings_s=timings)


# =============================================================================
# Helper Functions
# =============================================================================

def _text_budget(speaker_name: str, max_chars: int) -> int:
    """
    Characters of text per split piece: max_chars minus the "Name: " prefix.

    A name long enough to leave less than half of max_chars still gets
    half, so the line is not shredded into tiny requests; those pieces
    render over max_chars and travel as one-line chunks.
    """
    budget = max_chars - len(speaker_name) - 2
    floor = max(1, max_chars // 2)
    if budget < floor:
        warn(_LOG, "speaker_name_too_long", speaker=speaker_name[:40], max_chars=max_chars)
        return floor
    return budget


def _split_text(text: str, max_chars: int) -> List[str]:
    """
    Split text into pieces of at most max_chars.

    Sentences are packed greedily; an oversized sentence falls back to
    clause packing, and an oversized clause to a hard split. Pieces keep
    their leading whitespace until packing, so text merged back into one
    piece reads exactly as it did in the line.
    """
    pieces: List[str] = []
    for sent_match in _SENT_SPLIT.finditer(text):
        sent = sent_match.group(0)
        if len(sent.strip()) <= max_chars:
            pieces.append(sent)
            continue
        for clause_match in _SOFT_SPLIT.finditer(sent):
            clause = clause_match.group(0)
            if len(clause.strip()) <= max_chars:
                pieces.append(clause)
            else:
                pieces.extend(_hard_split(clause, max_chars))

    return _pack(pieces, max_chars)


def _hard_split(text: str, max_chars: int) -> List[str]:
    body = text.lstrip()
    lead = text[: len(text) - len(body)]
    out = [body[i:i + max_chars] for i in range(0, len(body), max_chars)]
    if out:
        out[0] = lead + out[0]
    return out


def _pack(pieces: List[str], max_chars: int) -> List[str]:
    """Greedily merge adjacent pieces while they fit in max_chars."""
    result: List[str] = []
    current = ""
    for piece in pieces:
        if current.strip() and len((current + piece).strip()) > max_chars:
            result.append(current.strip())
            current = piece
        else:
            current += piece
    if current.strip():
        result.append(current.strip())
    return result
