"""Text processing utilities for invoice queries."""

import re
from typing import Iterable, List, Optional, Set, TYPE_CHECKING

if TYPE_CHECKING:
    from ..models.invoice import Invoice


MONTH_NAMES = (
    'january', 'february', 'march', 'april', 'may', 'june',
    'july', 'august', 'september', 'october', 'november', 'december'
)

MONTH_ABBREVIATIONS = tuple(name[:3] for name in MONTH_NAMES) + ('sept',)

WEEKDAY_NAMES = (
    'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday'
)

ACTION_WORDS = (
    'find', 'show', 'get', 'search', 'list', 'display', 'fetch', 'retrieve',
    'look', 'give', 'bring', 'pull', 'view', 'see', 'check'
)

DOMAIN_WORDS = (
    'invoice', 'invoices', 'bill', 'bills', 'purchase', 'purchases',
    'order', 'orders', 'receipt', 'receipts', 'payment', 'payments',
    'transaction', 'transactions', 'expense', 'expenses', 'document', 'documents'
)

KEYWORD_WORDS = (
    'from', 'for', 'with', 'by', 'to', 'between', 'and', 'or',
    'containing', 'including', 'last', 'next', 'this', 'that',
    'month', 'week', 'year', 'today', 'yesterday', 'tomorrow',
) + MONTH_NAMES + (
    'rupees', 'rs', 'dollars', 'amount', 'total', 'vendor', 'supplier',
    'around', 'about', 'approximately', 'approx', 'roughly', 'nearly'
)

CURRENCY_WORDS = frozenset({
    'rupee', 'rupees', 'rs', 'inr', 'dollar', 'dollars', 'usd',
    'eur', 'euro', 'euros', 'gbp', 'pound', 'pounds'
})

TIME_WORDS = frozenset({
    'today', 'yesterday', 'tomorrow', 'day', 'days', 'week', 'weeks',
    'month', 'months', 'year', 'years', 'quarter', 'last', 'next', 'this',
    'ago', 'recent', 'recently'
}) | frozenset(MONTH_NAMES) | frozenset(WEEKDAY_NAMES)

# Nouns that describe the record itself rather than what it is about
ENTITY_DOMAIN_WORDS = frozenset(DOMAIN_WORDS) | frozenset({
    'amount', 'total', 'vendor', 'vendors', 'supplier', 'suppliers',
    'product', 'products', 'item', 'items'
})

APPROXIMATION_WORDS = frozenset({
    'around', 'about', 'approximately', 'approx', 'roughly', 'nearly'
})

STOP_WORDS = frozenset({
    'find', 'get', 'show', 'display', 'search', 'look', 'list', 'lists',
    'fetch', 'retrieve', 'give', 'bring', 'pull', 'view', 'see', 'check',
    'for', 'the', 'a', 'an', 'this', 'that', 'these', 'those',
    'is', 'are', 'was', 'were', 'be', 'been', 'being',
    'have', 'has', 'had', 'do', 'does', 'did',
    'will', 'would', 'should', 'could', 'may', 'might', 'can', 'must',
    'to', 'from', 'in', 'on', 'at', 'by', 'with', 'of', 'about', 'into', 'onto',
    'up', 'down', 'out', 'off', 'over', 'under', 'above', 'below',
    'me', 'my', 'myself', 'we', 'our', 'ours', 'ourselves',
    'you', 'your', 'yours', 'yourself', 'yourselves',
    'he', 'him', 'his', 'himself', 'she', 'her', 'hers', 'herself',
    'it', 'its', 'itself', 'they', 'them', 'their', 'theirs', 'themselves',
    'what', 'which', 'who', 'whom', 'whose', 'where', 'when', 'why', 'how',
    'all', 'each', 'every', 'both', 'few', 'more', 'most', 'other', 'some', 'such',
    'no', 'nor', 'not', 'only', 'own', 'same', 'so', 'than', 'too', 'very',
    'just', 'now', 'and', 'or', 'between', 'containing', 'including',
    'bought', 'purchased', 'worth', 'costing', 'amount', 'total',
    'invoice', 'invoices', 'bill', 'bills',
}) | APPROXIMATION_WORDS | CURRENCY_WORDS

STATIC_DICTIONARY: List[str] = list(dict.fromkeys(
    ACTION_WORDS + DOMAIN_WORDS + KEYWORD_WORDS + MONTH_ABBREVIATIONS
))

PUNCTUATION = '.,!?;:'
_WHITESPACE = re.compile(r'\s+')


def clean_token(token: str) -> str:
    """Lowercase a token and strip sentence punctuation from both ends."""
    return token.lower().strip(PUNCTUATION)


def collapse_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim."""
    return _WHITESPACE.sub(' ', text).strip()


def preserve_case(original: str, corrected: str) -> str:
    """
    Apply the capitalisation pattern of ``original`` to ``corrected``.

    ALL-CAPS stays ALL-CAPS, lowercase stays lowercase and Capitalized
    stays Capitalized. Any other mix is lowercased.
    """
    if not original:
        return corrected
    if original == original.upper():
        return corrected.upper()
    if original == original.lower():
        return corrected.lower()
    if original[0] == original[0].upper():
        return corrected[:1].upper() + corrected[1:].lower()
    return corrected.lower()


def build_searchable_text(invoice: 'Invoice') -> str:
    """
    Build the text embedded for a stored invoice.

    Vendor name first, then each product name, then the ISO invoice date.
    Amounts are filtered on, never embedded.
    """
    parts: List[str] = []

    if invoice.vendor_name and invoice.vendor_name.strip():
        parts.append(invoice.vendor_name.strip())

    for item in invoice.items:
        if item.product_name and item.product_name.strip():
            parts.append(item.product_name.strip())

    if invoice.invoice_date:
        parts.append(invoice.invoice_date.isoformat())

    return '. '.join(parts)


class TextProcessor:
    """Stop-word and casing utilities shared by the query pipeline."""

    def __init__(self, extra_stop_words: Optional[Iterable[str]] = None):
        """
        Initialize text processor.

        Args:
            extra_stop_words: Additional words to drop from residual text
        """
        self.stop_words: Set[str] = set(STOP_WORDS)
        if extra_stop_words:
            self.stop_words.update(word.lower() for word in extra_stop_words)

    def is_stop_word(self, token: str) -> bool:
        """Check a token against the stop-word set, ignoring case and punctuation."""
        return clean_token(token) in self.stop_words

    def remove_stop_words(self, text: str) -> str:
        """
        Drop stop words and rejoin the remaining tokens with single spaces.

        Tokens that are empty once punctuation is stripped are dropped too,
        so applying this twice gives the same result as applying it once.
        """
        words = [
            word for word in text.split()
            if clean_token(word) and clean_token(word) not in self.stop_words
        ]
        return ' '.join(words)

    def restore_case(self, text: str, names: Iterable[str]) -> str:
        """Replace case-insensitive occurrences of each name with its original casing."""
        for name in names:
            if not name:
                continue
            pattern = re.compile(r'(?<!\w)' + re.escape(name) + r'(?!\w)', re.IGNORECASE)
            text = pattern.sub(lambda _match, _name=name: _name, text)
        return text
