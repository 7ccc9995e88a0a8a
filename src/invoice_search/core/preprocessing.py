"""Query preprocessing: date, amount and entity extraction from free-form text."""

import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from re import Match, Pattern
from typing import Callable, List, Optional, Sequence, Tuple

from ..models.query import DateRange, PreprocessedQuery
from ..utils.text_processing import (
    CURRENCY_WORDS,
    DOMAIN_WORDS,
    ENTITY_DOMAIN_WORDS,
    MONTH_NAMES,
    PUNCTUATION,
    STOP_WORDS,
    TIME_WORDS,
    TextProcessor,
    collapse_whitespace,
)

logger = logging.getLogger(__name__)

MONTH_ALIASES = {name: index for index, name in enumerate(MONTH_NAMES, 1)}
MONTH_ALIASES.update({name[:3]: index for name, index in list(MONTH_ALIASES.items())})
MONTH_ALIASES['sept'] = 9

_MONTH_FULL = '|'.join(MONTH_NAMES)
_MONTH_ANY = '|'.join(sorted(MONTH_ALIASES, key=len, reverse=True))
_WEEKDAY = 'monday|tuesday|wednesday|thursday|friday|saturday|sunday'
_ORDINAL = r'(?:st|nd|rd|th)?'


def month_span(year: int, month: int) -> DateRange:
    """Full calendar month as an inclusive range."""
    last_day = calendar.monthrange(year, month)[1]
    return DateRange(date(year, month, 1), date(year, month, last_day))


def _make_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Date rules
# ---------------------------------------------------------------------------

class DateRule:
    """One recognised date phrasing; ``match`` returns None when it does not apply."""

    pattern: Pattern

    def match(self, text: str, today: date) -> Optional[DateRange]:
        found = self.pattern.search(text)
        if found is None:
            return None
        return self.resolve(found, today)

    def resolve(self, found: Match, today: date) -> Optional[DateRange]:
        raise NotImplementedError


class RelativeDayRule(DateRule):
    """today / yesterday / tomorrow, each a single day."""

    pattern = re.compile(r'\b(today|yesterday|tomorrow)\b')
    offsets = {'yesterday': -1, 'today': 0, 'tomorrow': 1}

    def match(self, text: str, today: date) -> Optional[DateRange]:
        days = [today + timedelta(days=self.offsets[m]) for m in self.pattern.findall(text)]
        if not days:
            return None
        return DateRange(min(days), max(days))


class LastNamedMonthRule(DateRule):
    """``last <month>``: the most recent such month not after the current one."""

    pattern = re.compile(rf'\blast\s+({_MONTH_FULL})\b')

    def resolve(self, found: Match, today: date) -> Optional[DateRange]:
        month = MONTH_ALIASES[found.group(1)]
        year = today.year - 1 if month > today.month else today.year
        return month_span(year, month)


class LastMonthRule(DateRule):
    pattern = re.compile(r'\blast\s+month\b')

    def resolve(self, found: Match, today: date) -> Optional[DateRange]:
        previous = today.replace(day=1) - timedelta(days=1)
        return month_span(previous.year, previous.month)


class LastWeekRule(DateRule):
    """Most recently completed Monday to Sunday week."""

    pattern = re.compile(r'\blast\s+week\b')

    def resolve(self, found: Match, today: date) -> Optional[DateRange]:
        monday = today - timedelta(days=today.weekday() + 7)
        return DateRange(monday, monday + timedelta(days=6))


class LastYearRule(DateRule):
    pattern = re.compile(r'\blast\s+year\b')

    def resolve(self, found: Match, today: date) -> Optional[DateRange]:
        year = today.year - 1
        return DateRange(date(year, 1, 1), date(year, 12, 31))


class ThisPeriodRule(DateRule):
    """Current ISO week, calendar month or calendar year."""

    pattern = re.compile(r'\bthis\s+(week|month|year)\b')

    def resolve(self, found: Match, today: date) -> Optional[DateRange]:
        unit = found.group(1)
        if unit == 'week':
            monday = today - timedelta(days=today.weekday())
            return DateRange(monday, monday + timedelta(days=6))
        if unit == 'month':
            return month_span(today.year, today.month)
        return DateRange(date(today.year, 1, 1), date(today.year, 12, 31))


class MonthYearRule(DateRule):
    """``<month> <yyyy>`` unless a day number precedes the month, as in ``15th of march 2024``."""

    pattern = re.compile(rf'\b({_MONTH_ANY})\.?\s+(\d{{4}})\b')
    day_before = re.compile(rf'\b\d{{1,2}}{_ORDINAL}\s+(?:of\s+)?$')

    def match(self, text: str, today: date) -> Optional[DateRange]:
        for found in self.pattern.finditer(text):
            if self.day_before.search(text[:found.start()]):
                continue
            return self.resolve(found, today)
        return None

    def resolve(self, found: Match, today: date) -> Optional[DateRange]:
        year = int(found.group(2))
        if year < 1:
            return None
        return month_span(year, MONTH_ALIASES[found.group(1)])


class ExplicitDateRule(DateRule):
    """
    Absolute dates anywhere in the text.

    A single date is a one-day range; several dates collapse to their
    earliest and latest. Dates without a year fall in the current year.
    """

    iso = re.compile(r'\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b')
    day_first = re.compile(r'\b(\d{1,2})[-/](\d{1,2})[-/](\d{4}|\d{2})\b')
    month_day = re.compile(rf'\b({_MONTH_ANY})\.?\s+(\d{{1,2}}){_ORDINAL}\b(?:,?\s+(\d{{4}})\b)?')
    day_month = re.compile(rf'\b(\d{{1,2}}){_ORDINAL}\s+(?:of\s+)?({_MONTH_ANY})\b\.?(?:,?\s+(\d{{4}})\b)?')

    def match(self, text: str, today: date) -> Optional[DateRange]:
        found: List[date] = []
        taken: List[Tuple[int, int]] = []

        def claim(m: Match) -> bool:
            start, end = m.span()
            if any(start < e and s < end for s, e in taken):
                return False
            taken.append((start, end))
            return True

        for m in self.iso.finditer(text):
            if claim(m):
                found.append(_make_date(int(m.group(1)), int(m.group(2)), int(m.group(3))))

        for m in self.day_first.finditer(text):
            if claim(m):
                year = int(m.group(3))
                if year < 100:
                    year += 2000
                found.append(_make_date(year, int(m.group(2)), int(m.group(1))))

        for m in self.month_day.finditer(text):
            if claim(m):
                year = int(m.group(3)) if m.group(3) else today.year
                found.append(_make_date(year, MONTH_ALIASES[m.group(1)], int(m.group(2))))

        for m in self.day_month.finditer(text):
            if claim(m):
                year = int(m.group(3)) if m.group(3) else today.year
                found.append(_make_date(year, MONTH_ALIASES[m.group(2)], int(m.group(1))))

        dates = [d for d in found if d is not None]
        if not dates:
            return None
        return DateRange(min(dates), max(dates))


DEFAULT_DATE_RULES: Tuple[DateRule, ...] = (
    RelativeDayRule(),
    LastNamedMonthRule(),
    LastMonthRule(),
    LastWeekRule(),
    LastYearRule(),
    ThisPeriodRule(),
    MonthYearRule(),
    ExplicitDateRule(),
)

DATE_TEXT_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r'\b(today|yesterday|tomorrow)\b'),
    re.compile(rf'\b(last|next)\s+(week|month|year|{_WEEKDAY}|{_MONTH_FULL})\b'),
    re.compile(r'\b(this|that)\s+(day|week|month|year)\b'),
    ExplicitDateRule.iso,
    ExplicitDateRule.day_first,
    ExplicitDateRule.month_day,
    ExplicitDateRule.day_month,
    re.compile(rf'\b({_MONTH_ANY})\.?\s+\d{{4}}\b'),
)

_DANGLING_PAIR = re.compile(r'\b(between|from)\s+(and|to)\b')
_DANGLING_TAIL = re.compile(r'(?:\s+\b(?:and|to|from|for|between))+\s*$')
_DANGLING_ONLY = re.compile(r'^(?:and|to|from|for|between)$')


def remove_date_text(text: str) -> str:
    """Strip recognised date phrases and the connectors they leave behind."""
    for pattern in DATE_TEXT_PATTERNS:
        text = pattern.sub(' ', text)
    text = collapse_whitespace(text)
    text = _DANGLING_PAIR.sub(' ', text)
    text = _DANGLING_TAIL.sub('', collapse_whitespace(text))
    if _DANGLING_ONLY.match(text):
        return ''
    return collapse_whitespace(text)


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

# Digits on both sides of a date separator are never amounts; a trailing "/-" belongs to the amount
_NUM = r'(?<![\w,])(?<!\d[./-])(\d{1,3}(?:,\d{2,3})+(?:\.\d+)?|\d+(?:\.\d+)?)(?!\d|[.,/-]\d)(?:/-)?'
_SYMBOL = r'[₹$€£]'
_CURRENCY = r'(?:rupees?|rs|inr|dollars?|usd|euros?|eur|gbp|pounds?)'
_PREFIX = rf'(?:{_SYMBOL}\s*|(?:rs|inr|usd|eur|gbp)\b\.?\s*)?'
_SUFFIX = rf'(?:\s*{_CURRENCY}\b\.?)?'
_QUALIFIER = re.compile(r'\b(?:around|about|approximately|approx|roughly|nearly)\s+$')


@dataclass
class AmountExtraction:
    """Amount bounds found in a text and the character spans they came from."""
    minimum: Decimal
    maximum: Decimal
    spans: List[Tuple[int, int]] = field(default_factory=list)
    is_range: bool = False


def parse_amount(value: str) -> Optional[Decimal]:
    """Parse a number with optional thousands separators."""
    try:
        return Decimal(value.replace(',', ''))
    except InvalidOperation:
        return None


class AmountExtractor:
    """
    Finds monetary amounts and turns them into an inclusive range.

    An explicit range keeps its extremes. A single amount gets a +/-10%
    band. Several unrelated amounts span from the smallest to the largest.
    """

    range_patterns: Tuple[Pattern, ...] = (
        re.compile(rf'\b(?:between|from)\s+{_PREFIX}{_NUM}{_SUFFIX}\s+(?:and|to)\s+{_PREFIX}{_NUM}{_SUFFIX}'),
        re.compile(rf'{_PREFIX}{_NUM}{_SUFFIX}\s+to\s+{_PREFIX}{_NUM}{_SUFFIX}'),
    )
    single_patterns: Tuple[Pattern, ...] = (
        re.compile(rf'{_SYMBOL}\s*{_NUM}'),
        re.compile(rf'{_NUM}\s*{_CURRENCY}\b\.?'),
        re.compile(rf'\b(?:rs|inr|usd|eur|gbp)\b\.?\s*{_NUM}'),
    )
    bare_pattern: Pattern = re.compile(_NUM)

    def __init__(self, tolerance: Decimal = Decimal("0.1")):
        self.tolerance = tolerance

    def extract(self, text: str) -> Optional[AmountExtraction]:
        values: List[Decimal] = []
        spans: List[Tuple[int, int]] = []
        is_range = False

        def add(m: Match, groups: Sequence[int]) -> bool:
            parsed = [parse_amount(m.group(g)) for g in groups]
            positive = [v for v in parsed if v is not None and v > 0]
            if not positive:
                return False
            values.extend(positive)
            spans.append(self._with_qualifier(text, m.span()))
            return True

        for pattern in self.range_patterns:
            for m in pattern.finditer(text):
                if add(m, (1, 2)):
                    is_range = True

        for pattern in self.single_patterns:
            for m in pattern.finditer(text):
                add(m, (1,))

        for m in self.bare_pattern.finditer(text):
            digits = m.group(1).replace(',', '')
            integer_part = digits.split('.')[0]
            if len(integer_part) >= 4 or '.' in digits:
                add(m, (1,))

        if not values:
            return None

        unique = sorted(set(values))
        if not is_range and len(unique) == 1:
            amount = unique[0]
            minimum = max(Decimal("0"), amount * (1 - self.tolerance))
            maximum = amount * (1 + self.tolerance)
        else:
            minimum, maximum = unique[0], unique[-1]

        return AmountExtraction(minimum=minimum, maximum=maximum, spans=spans, is_range=is_range)

    @staticmethod
    def _with_qualifier(text: str, span: Tuple[int, int]) -> Tuple[int, int]:
        start, end = span
        qualifier = _QUALIFIER.search(text[:start])
        if qualifier:
            start = qualifier.start()
        return start, end


def remove_spans(text: str, spans: Sequence[Tuple[int, int]]) -> str:
    """Blank out character spans, merging overlaps."""
    if not spans:
        return text
    merged: List[List[int]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])

    pieces = []
    cursor = 0
    for start, end in merged:
        pieces.append(text[cursor:start])
        pieces.append(' ')
        cursor = end
    pieces.append(text[cursor:])
    return collapse_whitespace(''.join(pieces))


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

VENDOR_TRIGGERS = frozenset({'for', 'from', 'by', 'vendor', 'supplier'})
PRODUCT_TRIGGERS = frozenset({'with', 'product', 'item', 'bought', 'purchased'})
CONTEXT_TRIGGERS = frozenset({'with', 'for', 'containing'})
MAX_PRODUCT_TOKENS = 3

_QUOTED = re.compile(r'"([^"]+)"|“([^”]+)”|(?<!\w)\'([^\']+)\'(?!\w)')
_TOKEN = re.compile(r'\S+')
_TOKEN_STRIP = PUNCTUATION + '"\'“”()[]'

_REJECTED_WORDS = STOP_WORDS | ENTITY_DOMAIN_WORDS | CURRENCY_WORDS | TIME_WORDS


@dataclass
class _Token:
    text: str
    clean: str
    start: int
    end: int
    breaks_after: bool

    @property
    def lower(self) -> str:
        return self.clean.lower()

    @property
    def capitalized(self) -> bool:
        return bool(self.clean) and self.clean[0].isupper()


class EntityExtractor:
    """
    Capitalisation and context heuristics for vendor and product mentions.

    Runs on the original-case text: capitalised spans after a vendor
    trigger, or standing on their own, are vendors; capitalised spans after
    a product trigger, quoted spans, words after a product trigger and nouns
    next to invoice words are products.
    """

    def __init__(self, rejected_words: Optional[frozenset] = None):
        self.rejected_words = rejected_words or _REJECTED_WORDS

    def is_rejected(self, candidate: str) -> bool:
        """Check whether a candidate can never be an entity name."""
        lowered = candidate.lower().strip()
        if not lowered:
            return True
        if any(ch.isdigit() for ch in lowered):
            return True
        return lowered in self.rejected_words or all(
            word in self.rejected_words for word in lowered.split()
        )

    def tokenize(self, text: str) -> List[_Token]:
        tokens = []
        for m in _TOKEN.finditer(text):
            raw = m.group(0)
            clean = raw.strip(_TOKEN_STRIP)
            tokens.append(_Token(
                text=raw,
                clean=clean,
                start=m.start(),
                end=m.end(),
                breaks_after=raw.rstrip(_TOKEN_STRIP) != raw
            ))
        return tokens

    def extract(self, text: str) -> Tuple[List[str], List[str]]:
        """
        Find vendor and product candidates.

        Returns:
            Vendor names and product names, each in order of discovery
        """
        vendors: List[str] = []
        products: List[str] = []
        seen: set = set()

        def accept(candidate: str, target: List[str]) -> None:
            candidate = ' '.join(candidate.split())
            if self.is_rejected(candidate) or candidate.lower() in seen:
                return
            seen.add(candidate.lower())
            target.append(candidate)

        quoted_ranges = []
        quoted = []
        for m in _QUOTED.finditer(text):
            value = next(g for g in m.groups() if g is not None)
            quoted.append(value.strip())
            quoted_ranges.append(m.span())

        tokens = [
            t for t in self.tokenize(text)
            if not any(s <= t.start < e for s, e in quoted_ranges)
        ]

        runs = self._capitalized_runs(tokens)
        product_runs = []
        for start, end in runs:
            previous = tokens[start - 1].lower if start > 0 else ''
            name = ' '.join(t.clean for t in tokens[start:end])
            if previous in PRODUCT_TRIGGERS:
                product_runs.append(name)
            else:
                accept(name, vendors)

        # (a) words after a product trigger
        for i, token in enumerate(tokens):
            if token.lower not in PRODUCT_TRIGGERS or token.breaks_after:
                continue
            words = []
            for follower in tokens[i + 1:i + 1 + MAX_PRODUCT_TOKENS]:
                if self._is_trigger(follower) or self.is_rejected(follower.clean):
                    break
                words.append(follower.clean)
                if follower.breaks_after:
                    break
            if words:
                accept(' '.join(words), products)

        # (b) quoted spans
        for value in quoted:
            accept(value, products)

        # (c) capitalised spans not claimed as vendors
        for name in product_runs:
            accept(name, products)

        # (d) nouns next to invoice words or after with/for/containing
        for i, token in enumerate(tokens):
            if token.lower in DOMAIN_WORDS:
                neighbours = [i - 1, i + 1]
            elif token.lower in CONTEXT_TRIGGERS:
                neighbours = [i + 1]
            else:
                continue
            for j in neighbours:
                if 0 <= j < len(tokens) and not self._is_trigger(tokens[j]):
                    accept(tokens[j].clean, products)

        return vendors, products

    def _is_trigger(self, token: _Token) -> bool:
        return token.lower in VENDOR_TRIGGERS or token.lower in PRODUCT_TRIGGERS

    def _capitalized_runs(self, tokens: List[_Token]) -> List[Tuple[int, int]]:
        runs = []
        start = None
        for i, token in enumerate(tokens):
            usable = token.capitalized and not self.is_rejected(token.clean)
            if usable and start is None:
                start = i
            if not usable and start is not None:
                runs.append((start, i))
                start = None
            if usable and token.breaks_after:
                runs.append((start, i + 1))
                start = None
        if start is not None:
            runs.append((start, len(tokens)))
        return runs


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class QueryPreprocessor:
    """
    Turns a free-form query into filters and residual search text.

    Never raises on malformed input: a failing extraction step leaves its
    field unset and the text untouched.
    """

    def __init__(
        self,
        text_processor: Optional[TextProcessor] = None,
        date_rules: Optional[Sequence[DateRule]] = None,
        amount_extractor: Optional[AmountExtractor] = None,
        entity_extractor: Optional[EntityExtractor] = None,
        today: Callable[[], date] = date.today
    ):
        """
        Initialize query preprocessor.

        Args:
            text_processor: Stop-word and casing helper
            date_rules: Date phrasings in priority order, first match wins
            amount_extractor: Amount finder
            entity_extractor: Vendor and product finder
            today: Returns the reference date for relative phrases
        """
        self.text_processor = text_processor or TextProcessor()
        self.date_rules = tuple(date_rules or DEFAULT_DATE_RULES)
        self.amount_extractor = amount_extractor or AmountExtractor()
        self.entity_extractor = entity_extractor or EntityExtractor()
        self._today = today

    def preprocess(self, query: str) -> PreprocessedQuery:
        if not query or not query.strip():
            return PreprocessedQuery()

        original = collapse_whitespace(query)
        vendors: List[str] = []
        products: List[str] = []
        try:
            vendors, products = self.entity_extractor.extract(original)
        except Exception as e:
            logger.warning(f"Entity extraction failed for '{original}': {str(e)}")

        working = original.lower()

        date_range = None
        try:
            date_range = self.extract_dates(working)
            if date_range is not None:
                working = remove_date_text(working)
        except Exception as e:
            logger.warning(f"Date extraction failed for '{original}': {str(e)}")
            date_range = None

        amounts = None
        try:
            amounts = self.amount_extractor.extract(working)
            if amounts is not None:
                working = remove_spans(working, amounts.spans)
        except Exception as e:
            logger.warning(f"Amount extraction failed for '{original}': {str(e)}")
            amounts = None

        residual = self.text_processor.remove_stop_words(working)
        residual = self.text_processor.restore_case(residual, vendors + products)

        result = PreprocessedQuery(
            normalized_query=residual,
            date_from=date_range.start if date_range else None,
            date_to=date_range.end if date_range else None,
            amount_min=amounts.minimum if amounts else None,
            amount_max=amounts.maximum if amounts else None,
            vendor_names=tuple(vendors),
            product_names=tuple(products)
        )
        logger.debug(f"Preprocessed '{original}': {result.to_dict()}")
        return result

    def extract_dates(self, text: str) -> Optional[DateRange]:
        """Apply the date rules in order and return the first match."""
        today = self._today()
        for rule in self.date_rules:
            found = rule.match(text, today)
            if found is not None:
                logger.debug(f"{type(rule).__name__} matched: {found.start} to {found.end}")
                return found
        return None
