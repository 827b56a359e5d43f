"""Cleanup of generated replies before they reach the user.

Two phases. Line-level rewrites strip instruction leakage, emphasis markup and
duplicated punctuation, repeated until nothing changes. The result is then
parsed into a small document model (summary, paragraphs, bullet lists,
Plan/Recommendation sections, caveats, sources) and serialized back, so the
final layout never depends on the order the rewrites ran in.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

# Structure passes settle in two or three rounds; this only bounds pathological input.
_MAX_STRUCTURE_PASSES = 20

# Meta-instruction phrases and internal markers that leak from prompting.
META_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\*\*(?:important caveat|caveat|note|options|important)\*\*\s*:?", re.I),
    re.compile(r"\[(?:COMPLEX|SIMPLE|INTERNAL|SYSTEM|DEBUG|THINKING|REASONING)[^\]\n]*\]", re.I),
    re.compile(r"\bIdentify (?:the )?(?:key )?requirements?\b[^.\n]*\.?", re.I),
    re.compile(r"\bConsider (?:the )?constraints?\b[^.\n]*\.?", re.I),
    re.compile(r"\bEvaluate (?:the )?options?\b[^.\n]*\.?", re.I),
    re.compile(r"\bPrioritize recommendations?\b[^.\n]*\.?", re.I),
    re.compile(r"\brequirements from\b[^.\n]*\.", re.I),
    re.compile(r"\bconstraints for\b[^.\n]*\.", re.I),
    re.compile(r"\bfrom the user \([^)\n]+\)", re.I),
    re.compile(r"\bfor this time: [^.\n]+\.", re.I),
    re.compile(
        r"\bbased on (?:the |your )?(?:user(?:'s)? )?(?:requirements|constraints|instructions)\b"
        r"[^.\n]*\.?",
        re.I,
    ),
    re.compile(r"^[ \t]*Account for [^.\n]+\.", re.I | re.M),
    re.compile(r"^[ \t]*Step \d+[ \t]*[:.)-][ \t]*$", re.I | re.M),
]

_EMPHASIS_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\*\*"), ""),
    (re.compile(r"__"), ""),
    (re.compile(r"(?<![\w*])\*(?=\S)([^*\n]+?)(?<=\S)\*(?![\w*])"), r"\1"),
    (re.compile(r"(?<!\w)_(?=\S)([^_\n]+?)(?<=\S)_(?!\w)"), r"\1"),
    (re.compile(r"^[ \t]*#{1,6}[ \t]*", re.M), ""),
]

_PUNCTUATION_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r":(?:\s*:)+"), ":"),
    (re.compile(r",(?:\s*,)+"), ","),
    (re.compile(r"(\d+[.)])[ \t]*:[ \t]*"), r"\1 "),
    (re.compile(r"\([ \t]*\)"), ""),
    (re.compile(r"[ \t]{2,}"), " "),
    (re.compile(r"[ \t]+([,.;:!?])"), r"\1"),
]

# Structural splitting
_INLINE_HEADER = re.compile(r"(?<=\S)[ \t]+(?=(?:Plan|Recommendations?|Sources?):)")
_INLINE_BULLET = re.compile(r"(?<=\S)[ \t]*•[ \t]*")
_TIGHT_BULLET = re.compile(r"^•(?=\S)", re.M)
_INLINE_NUMBERED = re.compile(r"\s+(?=\d{1,2}[.)]\s)")

_HEADER_RE = re.compile(r"^(plan|recommendations?)\s*:\s*(.*)$", re.I)
_SOURCES_RE = re.compile(r"^(sources?)\s*:\s*(.*)$", re.I)
_SUMMARY_RE = re.compile(r"^tl;?\s?dr\s*:\s*(.*)$", re.I)
_CAVEAT_RE = re.compile(r"^(caveat|note|important)\s*:\s*(.+)$", re.I)
_ITEM_RE = re.compile(r"^(?:([•*-])|(\d{1,2}[.)]))\s+(.+)$")


# -- Document model ----------------------------------------------------------


@dataclass
class Item:
    """One list entry. ``marker`` is empty for unmarked section lines."""

    marker: str
    text: str

    def render(self) -> str:
        return f"{self.marker} {self.text}" if self.marker else self.text


@dataclass(kw_only=True)
class Block:
    gap_before: bool = False

    def render(self) -> str:
        raise NotImplementedError


@dataclass(kw_only=True)
class Summary(Block):
    text: str

    def render(self) -> str:
        return f"TL;DR: {self.text}".rstrip()


@dataclass(kw_only=True)
class Paragraph(Block):
    lines: list[str] = field(default_factory=list)

    def render(self) -> str:
        return "\n".join(self.lines)


@dataclass(kw_only=True)
class BulletList(Block):
    items: list[Item] = field(default_factory=list)

    def render(self) -> str:
        return "\n".join(item.render() for item in self.items)


@dataclass(kw_only=True)
class Section(Block):
    """A ``Plan:`` or ``Recommendation:`` header with its items."""

    kind: str
    label: str
    items: list[Item] = field(default_factory=list)

    def render(self) -> str:
        return "\n".join([f"{self.label}:"] + [item.render() for item in self.items])


@dataclass(kw_only=True)
class Caveat(Block):
    label: str
    text: str

    def render(self) -> str:
        return f"{self.label}: {self.text}"


@dataclass(kw_only=True)
class Sources(Block):
    label: str
    text: str

    def render(self) -> str:
        return f"{self.label}: {self.text}".rstrip()


@dataclass
class Document:
    blocks: list[Block] = field(default_factory=list)

    def sections(self, kind: str) -> list[Section]:
        return [b for b in self.blocks if isinstance(b, Section) and b.kind == kind]


# -- Parsing -----------------------------------------------------------------


def _make_item(piece: str) -> Item | None:
    piece = piece.strip()
    m = _ITEM_RE.match(piece)
    if m:
        marker = m.group(1) or m.group(2)
        text = m.group(3).lstrip(",;: ").strip()
    else:
        marker, text = "", piece.lstrip(",;: ").strip()
    if not text:
        return None
    return Item(marker=marker, text=text)


def _section_items(text: str) -> list[Item]:
    items = []
    for piece in _INLINE_NUMBERED.split(text):
        item = _make_item(piece)
        if item is not None:
            items.append(item)
    return items


def _split_structure(text: str) -> str:
    text = _INLINE_HEADER.sub("\n", text)
    text = _INLINE_BULLET.sub("\n• ", text)
    return _TIGHT_BULLET.sub("• ", text)


def parse_document(text: str) -> Document:
    """Parse rewritten reply text into a :class:`Document`."""
    doc = Document()
    current: Block | None = None
    gap = False

    for raw in _split_structure(text).split("\n"):
        line = raw.strip()
        if not line:
            current = None
            gap = bool(doc.blocks)
            continue

        header = _HEADER_RE.match(line)
        if header:
            label = header.group(1).capitalize()
            kind = "plan" if label == "Plan" else "recommendation"
            current = Section(
                kind=kind, label=label, items=_section_items(header.group(2)), gap_before=gap
            )
            doc.blocks.append(current)
            gap = False
            continue

        standalone: Block | None = None
        if m := _SOURCES_RE.match(line):
            standalone = Sources(label=m.group(1).capitalize(), text=m.group(2), gap_before=gap)
        elif m := _SUMMARY_RE.match(line):
            standalone = Summary(text=m.group(1), gap_before=gap)
        elif m := _CAVEAT_RE.match(line):
            standalone = Caveat(label=m.group(1).capitalize(), text=m.group(2), gap_before=gap)
        if standalone is not None:
            doc.blocks.append(standalone)
            current = None
            gap = False
            continue

        if isinstance(current, Section):
            items = _section_items(line)
            if _ITEM_RE.match(line) or all(not i.marker for i in current.items):
                current.items.extend(items)
                continue

        if _ITEM_RE.match(line):
            item = _make_item(line)
            if item is None:
                continue
            if isinstance(current, BulletList):
                current.items.append(item)
            else:
                current = BulletList(items=[item], gap_before=gap)
                doc.blocks.append(current)
                gap = False
            continue

        if isinstance(current, Paragraph):
            current.lines.append(line)
        else:
            current = Paragraph(lines=[line], gap_before=gap)
            doc.blocks.append(current)
            gap = False

    return doc


# -- Serialization -----------------------------------------------------------


def _needs_gap(prev: Block, block: Block) -> bool:
    return block.gap_before or isinstance(block, (Section, Sources)) or isinstance(prev, Section)


def render_document(doc: Document) -> str:
    """Serialize a :class:`Document` back to text."""
    out: list[str] = []
    prev: Block | None = None
    for block in doc.blocks:
        rendered = block.render()
        if not rendered:
            continue
        if prev is not None:
            out.append("\n\n" if _needs_gap(prev, block) else "\n")
        out.append(rendered)
        prev = block
    return "".join(out).strip()


# -- Public API --------------------------------------------------------------


class TextNormalizer:
    """Strip leakage from generated text and normalize its layout.

    ``clean`` is total and idempotent: unmatched input passes through with
    only whitespace normalized.
    """

    def __init__(self, extra_patterns: list[re.Pattern[str]] | None = None) -> None:
        self.patterns = META_PATTERNS + list(extra_patterns or [])

    def _rewrite_once(self, text: str) -> str:
        for pattern in self.patterns:
            text = pattern.sub("", text)
        for pattern, repl in _EMPHASIS_RULES:
            text = pattern.sub(repl, text)
        for pattern, repl in _PUNCTUATION_RULES:
            text = pattern.sub(repl, text)
        return text

    def rewrite(self, text: str) -> str:
        """Apply the line-level rewrites until they stop changing the text.

        Every rule deletes characters or trades a colon for a space, so the
        loop always ends.
        """
        while True:
            rewritten = self._rewrite_once(text)
            if rewritten == text:
                return text
            text = rewritten

    def _normalize_once(self, text: str) -> str:
        return render_document(parse_document(self.rewrite(text)))

    def clean(self, text: str) -> str:
        if not text:
            return ""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        # Splitting lines can expose new line-anchored leakage ("Plan: Step 2:"),
        # so run both phases until the output is stable.
        for _ in range(_MAX_STRUCTURE_PASSES):
            normalized = self._normalize_once(text)
            if normalized == text:
                break
            text = normalized
        return text


_default = TextNormalizer()


def clean(text: str) -> str:
    """Clean ``text`` with the default pattern list."""
    return _default.clean(text)
