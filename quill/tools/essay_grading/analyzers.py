"""Grammar and spelling detectors whose findings feed score calibration."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import Levenshtein

from quill.libs.config_loader import ConfigType, get_config
from quill.libs.llm import create_agent, llm_configured
from .models import CorrectionItem, DetectorResult, ErrorFinding, ErrorKind, Severity
from .response_parser import NEUTRAL, ResponseRepairParser

LOG = logging.getLogger(__name__)

DEFAULT_CHAR_BUDGET = 2000
DEFAULT_LLM_TIMEOUT_SECONDS = 30.0
RULE_CONFIDENCE = 0.7
SPELLING_CONFIDENCE = 0.9

GRAMMAR_SYSTEM_PROMPT = """You are an English writing tutor. Find ALL grammar errors in the student's essay.
Include subject-verb agreement, verb tense, pronoun, article and word-choice errors.

Return ONLY JSON in exactly this format:
{
  "grammar_analysis": {
    "corrections": [
      {
        "sentence_number": 1,
        "original": "incorrect text",
        "correction": "corrected text",
        "type": "subject_verb_agreement",
        "reason": "brief explanation",
        "confidence": 0.9,
        "severity": "moderate"
      }
    ],
    "total_errors": 1
  },
  "scoring": {
    "quality_scores": {"grammar": 0.8, "content": 0.8, "organization": 0.8, "style": 0.8, "mechanics": 0.8},
    "confidence": 0.9
  }
}"""

SENTENCE_PATTERN = re.compile(r"[^.!?]+[.!?]*")


def create_grammar_agent(configs: ConfigType, model: Optional[str] = None,
                         settings_dict: Optional[Dict[str, Any]] = None) -> Any:
    """Create the language-model agent used for grammar analysis."""
    return create_agent(
        configs=configs,
        model=model,
        settings_dict=settings_dict,
        system_prompt=GRAMMAR_SYSTEM_PROMPT,
    )


def map_error_kind(reported: str) -> ErrorKind:
    """Map a free-form error type from the model onto ErrorKind."""
    key = re.sub(r"[\s\-]+", "_", (reported or "").strip().lower())
    try:
        return ErrorKind(key)
    except ValueError:
        pass
    if 'agreement' in key:
        return ErrorKind.SUBJECT_VERB_AGREEMENT
    if 'tense' in key:
        return ErrorKind.VERB_TENSE
    if 'pronoun' in key:
        return ErrorKind.PRONOUN_CONFUSION
    if 'article' in key:
        return ErrorKind.ARTICLE_USAGE
    if 'word' in key or 'choice' in key or 'vocab' in key:
        return ErrorKind.WORD_CHOICE
    if 'spell' in key:
        return ErrorKind.SPELLING
    return ErrorKind.GRAMMAR


def map_severity(reported: str) -> Severity:
    key = (reported or "").strip().lower()
    if key in ('high', 'severe', 'major', 'critical'):
        return Severity.SEVERE
    if key in ('low', 'minor'):
        return Severity.MINOR
    return Severity.MODERATE


def finding_from_correction(item: CorrectionItem) -> ErrorFinding:
    return ErrorFinding(
        original=item.original,
        correction=item.correction,
        kind=map_error_kind(item.type),
        confidence=item.confidence,
        severity=map_severity(item.severity),
        sentence_number=item.sentence_number,
        reason=item.reason,
    )


@dataclass(frozen=True)
class GrammarRule:
    pattern: "re.Pattern[str]"
    replacement: str
    kind: ErrorKind
    reason: str


GRAMMAR_RULES: Sequence[GrammarRule] = (
    GrammarRule(re.compile(r"\bhe go\b", re.IGNORECASE), "he goes",
                ErrorKind.SUBJECT_VERB_AGREEMENT, 'Use "goes" with the singular subject "he"'),
    GrammarRule(re.compile(r"\bthey plays\b", re.IGNORECASE), "they play",
                ErrorKind.SUBJECT_VERB_AGREEMENT, 'Use "play" with the plural subject "they"'),
    GrammarRule(re.compile(r"\beveryday\b(?=\s+(?:I|we|you|they|he|she|people)\b)", re.IGNORECASE), "every day",
                ErrorKind.WORD_CHOICE, '"every day" means each day; "everyday" is an adjective'),
    GrammarRule(re.compile(r"\b(technology|social media|the internet) have changed\b", re.IGNORECASE),
                r"\1 has changed", ErrorKind.SUBJECT_VERB_AGREEMENT,
                'Use "has" with a singular subject'),
    GrammarRule(re.compile(r"\bpeoples\b(?=\s+\w+)", re.IGNORECASE), "people's",
                ErrorKind.SPELLING, 'Use "people\'s" for the possessive form'),
)


def _match_case(template: str, original: str) -> str:
    if original[:1].isupper():
        return template[:1].upper() + template[1:]
    return template


def rule_based_grammar(text: str, rules: Sequence[GrammarRule] = GRAMMAR_RULES) -> DetectorResult:
    """Detect a small set of common grammar errors with a fixed rule table."""
    findings = []
    for number, sentence_match in enumerate(SENTENCE_PATTERN.finditer(text), start=1):
        sentence = sentence_match.group()
        for rule in rules:
            for match in rule.pattern.finditer(sentence):
                original = match.group()
                findings.append(ErrorFinding(
                    original=original,
                    correction=_match_case(match.expand(rule.replacement), original),
                    kind=rule.kind,
                    confidence=RULE_CONFIDENCE,
                    severity=Severity.MODERATE,
                    sentence_number=number,
                    offset=sentence_match.start() + match.start(),
                    reason=rule.reason,
                ))
    return DetectorResult(findings=findings, source='rules', confidence=RULE_CONFIDENCE)


class GrammarAnalyzer:
    """Grammar detection through the language model, with a rule-based fallback."""

    def __init__(self, agent: Any = None,
                 char_budget: int = DEFAULT_CHAR_BUDGET,
                 timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS,
                 parser: Optional[ResponseRepairParser] = None):
        self.agent = agent
        self.char_budget = char_budget
        self.timeout_seconds = timeout_seconds
        self.parser = parser or ResponseRepairParser()

    @classmethod
    def from_config(cls, configs: ConfigType, model: Optional[str] = None) -> 'GrammarAnalyzer':
        agent = None
        if llm_configured(configs):
            agent = create_grammar_agent(configs, model=model)
        else:
            LOG.info("No llm.api_key configured; grammar analysis will use rules only")
        return cls(
            agent=agent,
            char_budget=int(get_config("llm.char_budget", configs, default=DEFAULT_CHAR_BUDGET)),
            timeout_seconds=float(get_config("llm.timeout_seconds", configs,
                                             default=DEFAULT_LLM_TIMEOUT_SECONDS)),
        )

    def _build_prompt(self, text: str) -> str:
        return ("Find ALL grammar errors in this student essay. Be thorough and include all errors:\n\n"
                f"{text[:self.char_budget]}")

    async def analyze_async(self, text: str) -> DetectorResult:
        if self.agent is None:
            return rule_based_grammar(text)

        try:
            result = await asyncio.wait_for(self.agent.run(self._build_prompt(text)),
                                            timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            LOG.warning(f"Grammar analysis timed out after {self.timeout_seconds:.0f}s; using rule-based detector")
            return rule_based_grammar(text)
        except Exception as e:
            LOG.warning(f"Grammar analysis failed ({e}); using rule-based detector")
            return rule_based_grammar(text)

        # Extract the actual output from the AgentRunResult
        if hasattr(result, 'output'):
            response_text = str(result.output)
        elif hasattr(result, 'data'):
            response_text = str(result.data)
        else:
            response_text = str(result)

        parsed = self.parser.parse(response_text)
        if parsed.strategy == NEUTRAL:
            LOG.warning("Could not understand grammar analysis response; using rule-based detector")
            return rule_based_grammar(text)

        findings = [finding_from_correction(item) for item in parsed.corrections]
        LOG.debug(f"Grammar analysis found {len(findings)} corrections via {parsed.strategy}")
        return DetectorResult(
            findings=findings,
            source=f"llm:{parsed.strategy}",
            confidence=parsed.confidence,
            quality_scores=parsed.quality_scores,
        )

    def analyze(self, text: str) -> DetectorResult:
        """Synchronous wrapper for analyze_async."""
        return asyncio.run(self.analyze_async(text))


COMMON_MISSPELLINGS: Dict[str, str] = {
    'accomodate': 'accommodate', 'acheive': 'achieve', 'accross': 'across',
    'agressive': 'aggressive', 'alot': 'a lot', 'apparantly': 'apparently',
    'arguement': 'argument', 'basicly': 'basically', 'begining': 'beginning',
    'beleive': 'believe', 'belive': 'believe', 'buisness': 'business',
    'calender': 'calendar', 'catagory': 'category', 'cemetary': 'cemetery',
    'collegue': 'colleague', 'comming': 'coming', 'commitee': 'committee',
    'completly': 'completely', 'concious': 'conscious', 'curiousity': 'curiosity',
    'definately': 'definitely', 'dissapoint': 'disappoint', 'embarass': 'embarrass',
    'enviroment': 'environment', 'existance': 'existence', 'finaly': 'finally',
    'foriegn': 'foreign', 'freind': 'friend', 'goverment': 'government',
    'grammer': 'grammar', 'happend': 'happened', 'harrass': 'harass',
    'immediatly': 'immediately', 'independant': 'independent', 'knowlege': 'knowledge',
    'libary': 'library', 'neccessary': 'necessary', 'necessery': 'necessary',
    'noticable': 'noticeable', 'occassion': 'occasion', 'occured': 'occurred',
    'occurence': 'occurrence', 'peice': 'piece', 'posession': 'possession',
    'prefered': 'preferred', 'probaly': 'probably', 'publically': 'publicly',
    'realy': 'really', 'recieve': 'receive', 'recomend': 'recommend',
    'refered': 'referred', 'relevent': 'relevant', 'religous': 'religious',
    'remeber': 'remember', 'responsability': 'responsibility', 'sentance': 'sentence',
    'seperate': 'separate', 'succesful': 'successful', 'suprise': 'surprise',
    'tommorow': 'tomorrow', 'tounge': 'tongue', 'truely': 'truly',
    'untill': 'until', 'wierd': 'weird', 'wich': 'which', 'writting': 'writing',
}

SPELLING_WORD_PATTERN = re.compile(r"\b[A-Za-z]+\b")
MIN_SPELLING_WORD_LENGTH = 4


def severity_for_distance(distance: int) -> Severity:
    if distance <= 1:
        return Severity.MINOR
    if distance <= 2:
        return Severity.MODERATE
    return Severity.SEVERE


def _starts_sentence(text: str, offset: int) -> bool:
    before = text[:offset].rstrip()
    return not before or before[-1] in '.!?\n'


class SpellingAnalyzer:
    """Dictionary lookup of common misspellings with character offsets."""

    def __init__(self, misspellings: Optional[Dict[str, str]] = None):
        self.misspellings = {k.lower(): v for k, v in (misspellings or COMMON_MISSPELLINGS).items()}

    def analyze(self, text: str) -> DetectorResult:
        findings: List[ErrorFinding] = []
        for match in SPELLING_WORD_PATTERN.finditer(text):
            word = match.group()
            if len(word) < MIN_SPELLING_WORD_LENGTH:
                continue
            # Capitalized words mid-sentence are treated as proper nouns
            if word[0].isupper() and not _starts_sentence(text, match.start()):
                continue
            correction = self.misspellings.get(word.lower())
            if correction is None:
                continue
            findings.append(ErrorFinding(
                original=word,
                correction=_match_case(correction, word),
                kind=ErrorKind.SPELLING,
                confidence=SPELLING_CONFIDENCE,
                severity=severity_for_distance(Levenshtein.distance(word.lower(), correction)),
                offset=match.start(),
                reason=f'"{word}" is commonly misspelled; the correct spelling is "{correction}"',
            ))
        return DetectorResult(findings=findings, source='dictionary', confidence=SPELLING_CONFIDENCE)

    async def analyze_async(self, text: str) -> DetectorResult:
        return self.analyze(text)
