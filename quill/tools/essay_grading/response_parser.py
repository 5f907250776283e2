"""Recover structured grammar analysis from free-form language-model output.

The model is asked for::

    {"grammar_analysis": {"corrections": [...], "total_errors": n},
     "scoring": {"quality_scores": {...}, "confidence": c}}

but replies are often wrapped in prose or code fences, or cut off by the
token limit. ``ResponseRepairParser`` runs an ordered list of strategies
and returns the first result any of them produces. When none succeeds it
returns a neutral, low-confidence result instead of raising.
"""

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .models import CorrectionItem, ParsedAnalysis, QualityScores

LOG = logging.getLogger(__name__)

DIRECT = 'direct'
TRUNCATION_REPAIR = 'truncation_repair'
SUBSTRUCTURE = 'substructure'
ITEM_SALVAGE = 'item_salvage'
NEUTRAL = 'neutral'

NEUTRAL_CONFIDENCE = 0.7
FAILED_CONFIDENCE = 0.3
REQUIRED_ITEM_FIELDS = ('original', 'correction')

# Upper bound on repair candidates tried for one response
MAX_REPAIR_CANDIDATES = 200

CODE_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?[ \t]*")
CORRECTIONS_PATTERN = re.compile(r'"corrections"\s*:\s*\[')
QUALITY_SCORES_PATTERN = re.compile(r'"quality_scores"\s*:\s*\{')

CLOSERS = {'{': '}', '[': ']'}


def clean_response(raw_text: Optional[str]) -> str:
    """Strip code fences and surrounding whitespace."""
    return CODE_FENCE_PATTERN.sub('', raw_text or '').strip()


def normalize_corrections(items: Any) -> List[CorrectionItem]:
    """
    Validate correction items, dropping anything unusable.

    Items missing a required field, items whose correction equals the
    original, and exact duplicates are discarded.
    """
    if not isinstance(items, list):
        return []
    result: List[CorrectionItem] = []
    seen = set()
    for item in items:
        if not isinstance(item, dict) or any(field not in item for field in REQUIRED_ITEM_FIELDS):
            continue
        try:
            correction = CorrectionItem(**item)
        except (ValidationError, TypeError) as e:
            LOG.debug(f"Dropping invalid correction {item!r}: {e}")
            continue
        if correction.original == correction.correction:
            continue
        key = (correction.original, correction.correction, correction.sentence_number)
        if key in seen:
            continue
        seen.add(key)
        result.append(correction)
    return result


def analysis_from_document(data: Any, strategy: str) -> ParsedAnalysis:
    """
    Build a ParsedAnalysis from a decoded document in the declared shape.

    Raises:
        ValueError: If the document does not contain grammar_analysis.corrections
    """
    if not isinstance(data, dict):
        raise ValueError("Response document is not an object")
    grammar = data.get('grammar_analysis')
    if not isinstance(grammar, dict) or not isinstance(grammar.get('corrections'), list):
        raise ValueError("Response document has no grammar_analysis.corrections list")

    corrections = normalize_corrections(grammar['corrections'])
    scoring = data.get('scoring') if isinstance(data.get('scoring'), dict) else {}
    confidence = _unit_or_default(scoring.get('confidence'), NEUTRAL_CONFIDENCE)
    return ParsedAnalysis(
        corrections=corrections,
        total_errors=len(corrections),
        quality_scores=QualityScores.from_partial(scoring.get('quality_scores')),
        confidence=confidence,
        strategy=strategy,
    )


def neutral_result() -> ParsedAnalysis:
    return ParsedAnalysis(
        corrections=[],
        total_errors=0,
        quality_scores=QualityScores.neutral(),
        confidence=FAILED_CONFIDENCE,
        strategy=NEUTRAL,
    )


def _unit_or_default(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))


def scan_json(text: str) -> Iterator[Tuple[int, str, Tuple[str, ...], bool]]:
    """
    Walk ``text`` character by character, tracking open containers.

    Yields (index, char, open_stack_after_char, in_string_after_char). Quoted
    strings and backslash escapes are honored so brackets inside strings do
    not count.
    """
    stack: List[str] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in CLOSERS:
            stack.append(ch)
        elif ch in ('}', ']'):
            if stack and CLOSERS[stack[-1]] == ch:
                stack.pop()
        yield i, ch, tuple(stack), in_string


def extract_balanced(text: str, start: int) -> Optional[str]:
    """Return the balanced container starting at ``text[start]``, or None if it never closes."""
    if start >= len(text) or text[start] not in CLOSERS:
        return None
    for i, ch, stack, in_string in scan_json(text[start:]):
        if not stack and not in_string:
            return text[start:start + i + 1]
    return None


def closing_suffix(stack: Sequence[str]) -> str:
    return ''.join(CLOSERS[opener] for opener in reversed(stack))


class ParseStrategy:
    """One recovery step. ``attempt`` returns None when the step does not apply."""

    name: str = ''

    def attempt(self, text: str) -> Optional[ParsedAnalysis]:
        raise NotImplementedError


class DirectParse(ParseStrategy):
    """Parse the whole text, or the span from the first '{' to the last '}'."""

    name = DIRECT

    def attempt(self, text: str) -> Optional[ParsedAnalysis]:
        candidates = [text]
        first, last = text.find('{'), text.rfind('}')
        if first != -1 and last > first:
            candidates.append(text[first:last + 1])
        for candidate in candidates:
            try:
                return analysis_from_document(json.loads(candidate), self.name)
            except ValueError:
                continue
        return None


class TruncationRepair(ParseStrategy):
    """
    Repair a response that was cut off mid-document.

    Truncation is assumed when the document ends inside a string, with
    unclosed containers, or with a trailing comma. The dangling fragment is
    trimmed back to the latest safe cut point (a comma, or just after an
    opening or closing bracket) and the closers for every container still
    open at that point are appended. Cut points are tried from the latest
    to the earliest until one yields the declared structure.
    """

    name = TRUNCATION_REPAIR

    def attempt(self, text: str) -> Optional[ParsedAnalysis]:
        start = text.find('{')
        if start == -1:
            return None
        body = text[start:]

        cut_points: List[Tuple[int, Tuple[str, ...]]] = []
        final_stack: Tuple[str, ...] = ()
        final_in_string = False
        for i, ch, stack, in_string in scan_json(body):
            final_stack, final_in_string = stack, in_string
            if in_string:
                continue
            if ch == ',':
                cut_points.append((i, stack))
            elif ch in '{[}]':
                cut_points.append((i + 1, stack))
            if not stack:
                # Document closed; anything after it is not truncation
                break

        truncated = bool(final_stack) or final_in_string or body.rstrip().endswith(',')
        if not truncated:
            return None

        for cut, stack in list(reversed(cut_points))[:MAX_REPAIR_CANDIDATES]:
            candidate = body[:cut].rstrip().rstrip(',') + closing_suffix(stack)
            try:
                result = analysis_from_document(json.loads(candidate), self.name)
            except ValueError:
                continue
            LOG.debug(f"Truncation repair succeeded by cutting at offset {cut}")
            return result
        return None


class SubstructureExtraction(ParseStrategy):
    """Pull out the corrections array (and quality scores, when intact) on their own."""

    name = SUBSTRUCTURE

    def attempt(self, text: str) -> Optional[ParsedAnalysis]:
        match = CORRECTIONS_PATTERN.search(text)
        if not match:
            return None
        array_text = extract_balanced(text, match.end() - 1)
        if array_text is None:
            return None
        try:
            items = json.loads(array_text)
        except ValueError:
            return None

        scoring: Dict[str, Any] = {'confidence': NEUTRAL_CONFIDENCE}
        scores_match = QUALITY_SCORES_PATTERN.search(text)
        if scores_match:
            scores_text = extract_balanced(text, scores_match.end() - 1)
            try:
                scoring['quality_scores'] = json.loads(scores_text) if scores_text else None
            except ValueError:
                pass

        document = {'grammar_analysis': {'corrections': items}, 'scoring': scoring}
        try:
            return analysis_from_document(document, self.name)
        except ValueError:
            return None


class ItemSalvage(ParseStrategy):
    """Collect every complete correction object found anywhere in the text."""

    name = ITEM_SALVAGE

    def attempt(self, text: str) -> Optional[ParsedAnalysis]:
        items = []
        for match in re.finditer(r'\{', text):
            obj_text = extract_balanced(text, match.start())
            if obj_text is None:
                continue
            try:
                obj = json.loads(obj_text)
            except ValueError:
                continue
            if isinstance(obj, dict) and all(field in obj for field in REQUIRED_ITEM_FIELDS):
                items.append(obj)

        corrections = normalize_corrections(items)
        if not corrections:
            return None
        scores = QualityScores.neutral().as_dict()
        scores['grammar'] = max(0.6, 1 - len(corrections) / 20)
        return ParsedAnalysis(
            corrections=corrections,
            total_errors=len(corrections),
            quality_scores=QualityScores(**scores),
            confidence=NEUTRAL_CONFIDENCE,
            strategy=self.name,
        )


def default_strategies() -> List[ParseStrategy]:
    return [DirectParse(), TruncationRepair(), SubstructureExtraction(), ItemSalvage()]


class ResponseRepairParser:
    """Run parse strategies in order; the first success wins."""

    def __init__(self, strategies: Optional[Sequence[ParseStrategy]] = None):
        self.strategies = list(strategies or default_strategies())

    def parse(self, raw_text: Optional[str]) -> ParsedAnalysis:
        text = clean_response(raw_text)
        if not text:
            LOG.warning("Empty language-model response; using neutral analysis")
            return neutral_result()

        for strategy in self.strategies:
            try:
                result = strategy.attempt(text)
            except Exception as e:
                LOG.debug(f"Parse strategy {strategy.name} raised: {e}")
                result = None
            if result is None:
                LOG.debug(f"Parse strategy {strategy.name} did not apply")
                continue
            if strategy.name != DIRECT:
                LOG.info(f"Recovered language-model response with {strategy.name} "
                         f"({len(result.corrections)} corrections)")
            return result

        LOG.warning("All parse strategies failed; using neutral analysis")
        return neutral_result()


def parse_response(raw_text: Optional[str]) -> ParsedAnalysis:
    """Parse with the default strategy order."""
    return ResponseRepairParser().parse(raw_text)
