# pitch_ia/section_extractor.py
"""
Tolerant parser turning a free-form model answer into a PitchRecord.

Accepted layouts (mixed freely inside one answer):

    1. [Problème] texte             one section per line, bracketed label
    2. Solution: texte              unbracketed label + separator
    3. [Marché] a 4. [Valeur] b     several sections compacted on one line
    5. [Canaux] début
       suite sur la ligne suivante  content wrapped until the next marker
    Modèle: texte                   bare label lines, no marker (fallback pass)

Two passes, each one only fills fields that are still empty:
- primary: numeric markers split the text into section units
- fallback: line scan for `Label:` lines, only if something is still missing

extract() never raises; an empty answer gives an all-empty record.
"""
import logging
import re
import unicodedata
from typing import Dict, List, Optional, Tuple

from pitch_ia.entities import FieldKey, PitchRecord

logger = logging.getLogger("pitch_ia")

# labels longer than this are sentences, not headers
MAX_LABEL_LEN = 60

_ALL_FORMS = sorted(
    {form for key in FieldKey for form in key.surface_forms},
    key=len,
    reverse=True,
)
_FORMS_ALT = "|".join(re.escape(f) for f in _ALL_FORMS)

# "1." / "2)" preceded by start, whitespace or markdown noise, and not a decimal ("2.5")
_MARKER_RE = re.compile(r"(?<![^\s*#>])(\d{1,2})\s*[.)](?!\d)")

# a known label at the very start of a unit, as a whole word (plural tolerated)
_LEADING_LABEL_RE = re.compile(
    r"^[\s*]*(" + _FORMS_ALT + r")s?(?![^\W\d_])",
    flags=re.IGNORECASE,
)

# separator between an unbracketed label and its content
_SEPARATOR_RE = re.compile(r":|\s-\s|[–—]")

_LEADING_NOISE_RE = re.compile(r"^[\s*:\-–—]+")

# fallback format: "Problème: texte", "**Valeur :** texte", "- Canaux: texte"
_FALLBACK_LABEL_RE = re.compile(
    r"^[\s*#>\-]*(" + _FORMS_ALT + r")s?[\s*]*:\s*(.*)$",
    flags=re.IGNORECASE,
)

_LINE_MARKER_RE = re.compile(r"^[\s*#>\-]*\d{1,2}\s*[.)](?!\d)")

_CODE_FENCE_RE = re.compile(r"```[a-zA-Z]*\n?|```\n?")


def _normalize_label(label: str) -> str:
    s = unicodedata.normalize("NFC", label or "")
    s = s.replace("’", "'").lower()
    s = s.strip().strip("[]*#_").strip()
    return re.sub(r"\s+", " ", s)


def resolve_label(label: str) -> Optional[FieldKey]:
    """
    Map a free-form label to its canonical key by case-insensitive substring match.

    When several surface forms occur, the one appearing first in the label wins
    (longest form on ties), so "Solution au problème" resolves to SOLUTION.
    """
    cleaned = _normalize_label(label)
    if not cleaned or len(cleaned) > MAX_LABEL_LEN:
        return None

    best: Optional[Tuple[Tuple[int, int], FieldKey]] = None
    for key in FieldKey:
        for form in key.surface_forms:
            pos = cleaned.find(form)
            if pos == -1:
                continue
            rank = (pos, -len(form))
            if best is None or rank < best[0]:
                best = (rank, key)
    return best[1] if best else None


def _clean_content(text: str) -> str:
    lines = [ln.strip() for ln in (text or "").splitlines()]
    joined = "\n".join(ln for ln in lines if ln)
    return joined.strip().strip("*").strip()


def _is_line_start(text: str, pos: int, noise: str = " \t*#>") -> bool:
    line_start = text.rfind("\n", 0, pos) + 1
    return not text[line_start:pos].strip(noise)


def _looks_like_header(rest: str) -> bool:
    head = rest.lstrip(" \t*")
    return head.startswith("[") or _LEADING_LABEL_RE.match(head) is not None


def _find_markers(text: str) -> List[re.Match]:
    """
    Markers at the start of a line always open a unit. A marker in the middle of
    a line (compacted layout) only does so when a bracket or a known label follows,
    so figures like "Top 10. Ensuite" stay inside the content.
    """
    markers = []
    for m in _MARKER_RE.finditer(text):
        if _is_line_start(text, m.start()) or _looks_like_header(text[m.end():]):
            markers.append(m)
    return markers


def split_unit(unit: str) -> Tuple[Optional[FieldKey], str]:
    """
    Split the text following a marker into (canonical key, content).

    Label precedence: bracketed label, then text up to a separator on the first
    line, then a known label at the start of the unit. Returns (None, "") when
    no label resolves.
    """
    s = unit.strip().lstrip("*").lstrip()
    if not s:
        return None, ""

    if s.startswith("["):
        close = s.find("]")
        if close != -1:
            key = resolve_label(s[1:close])
            return key, _clean_content(_LEADING_NOISE_RE.sub("", s[close + 1:])) if key else ""
        s = s[1:]

    first_line = s.split("\n", 1)[0]
    sep = _SEPARATOR_RE.search(first_line)
    if sep is not None and sep.start() <= MAX_LABEL_LEN:
        key = resolve_label(s[:sep.start()])
        if key is not None:
            return key, _clean_content(s[sep.end():])

    lead = _LEADING_LABEL_RE.match(s)
    if lead is not None:
        key = resolve_label(lead.group(1))
        if key is not None:
            return key, _clean_content(_LEADING_NOISE_RE.sub("", s[lead.end():]))

    return None, ""


def _unit_end(text: str, current: re.Match, following: Optional[re.Match]) -> int:
    if following is None:
        return len(text)
    pos = following.start()
    if _is_line_start(text, pos, noise=" \t*#>-"):
        # the next marker's "###", ">" or "- " prefix is not content
        pos = max(text.rfind("\n", 0, pos) + 1, current.end())
    return pos


def _primary_pass(text: str, record: PitchRecord) -> None:
    markers = _find_markers(text)
    for i, m in enumerate(markers):
        end = _unit_end(text, m, markers[i + 1] if i + 1 < len(markers) else None)
        key, content = split_unit(text[m.end():end])
        if key is None:
            logger.debug(f"Marker {m.group(1)} without a known label, skipped")
            continue
        record.set_if_empty(key, content)


def _fallback_pass(text: str, record: PitchRecord) -> None:
    buffers: Dict[FieldKey, List[str]] = {}
    current: Optional[FieldKey] = None

    for line in text.splitlines():
        trimmed = line.strip()
        if not trimmed:
            continue
        if _LINE_MARKER_RE.match(trimmed):
            # numbered lines belong to the primary pass
            current = None
            continue
        m = _FALLBACK_LABEL_RE.match(trimmed)
        if m is not None:
            current = resolve_label(m.group(1))
            buffers.setdefault(current, [])
            rest = m.group(2).strip().lstrip("*").strip()
            if rest:
                buffers[current].append(rest)
            continue
        if current is not None:
            buffers[current].append(trimmed)

    for key, lines in buffers.items():
        record.set_if_empty(key, _clean_content("\n".join(lines)))


def extract(raw_text: Optional[str]) -> PitchRecord:
    if raw_text is None:
        raw_text = ""
    elif not isinstance(raw_text, str):
        raw_text = str(raw_text)

    record = PitchRecord(raw=raw_text)
    text = unicodedata.normalize("NFC", _CODE_FENCE_RE.sub("", raw_text)).replace("\r\n", "\n")
    if not text.strip():
        logger.debug("Empty content received for parsing")
        return record

    _primary_pass(text, record)
    if record.missing_keys():
        _fallback_pass(text, record)

    logger.debug(
        "Parsing done - "
        + ", ".join(f"{k.label}={len(record.get(k))} chars" for k in FieldKey)
    )
    return record
