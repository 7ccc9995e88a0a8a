"""Fuzzy entity correction against the vocabulary cache and a static dictionary."""

import logging
import re
from typing import List, Optional, Sequence, Set, Tuple

from rapidfuzz import process, utils
from rapidfuzz.distance import Levenshtein

from ..models.result import FuzzyMatchResult, PhoneticCandidate
from ..utils.text_processing import PUNCTUATION, STATIC_DICTIONARY, preserve_case
from .exceptions import PhoneticUnavailableError
from .vocabulary import VocabularyCache

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 3
PHRASE_TOKEN_SIMILARITY = 0.6
PHRASE_DISTANCE_PER_TOKEN = 2
STATIC_MAX_DISTANCE = 2
STATIC_MAX_LENGTH_DIFF = 1
STATIC_MIN_SIMILARITY = 0.6
STATIC_MIN_CONFIDENCE = 0.5
VOCABULARY_MIN_CONFIDENCE = 0.6
PHONETIC_MAX_DISTANCE = 2
PHONETIC_MIN_SCORE = 0.5
PHONETIC_FULL_NAME_CONFIDENCE = 0.95

_NUMERIC = re.compile(r'^[\d.,]+$')
_CURRENCY_SYMBOLS = re.compile(r'[₹$€£@#%]')
_TOKENS = re.compile(r'\S+')
_TOKEN_STRIP = PUNCTUATION + '"\'“”()[]'


def similarity(a: str, b: str) -> float:
    """Normalized edit-distance similarity, ``1 - distance / max_len``, case-insensitive."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a.lower(), b.lower()) / max_len


def phonetic_confidence(token: str, candidate: PhoneticCandidate) -> float:
    """
    Composite score for a phonetic candidate.

    Soundex agreement dominates, metaphone agreement is secondary and the
    edit distance to the vendor's first token pulls the score down.
    """
    max_len = max(len(token), len(candidate.first_token)) or 1
    normalized_distance = candidate.edit_distance / max_len

    if candidate.soundex_match:
        score = 1.0 - normalized_distance
    elif candidate.metaphone_match:
        score = 0.8 - 0.5 * normalized_distance
    else:
        score = 0.5 - normalized_distance

    if candidate.soundex_match and candidate.metaphone_match:
        score = max(score, 0.7)
    elif candidate.soundex_match or candidate.metaphone_match:
        score = max(score, 0.6)

    return min(1.0, max(0.0, score))


def _vocabulary_candidates(names: Sequence[str]) -> List[str]:
    candidates: List[str] = []
    for name in names:
        candidates.append(name)
        words = [w.strip(PUNCTUATION) for w in name.split()]
        if len(words) > 1:
            candidates.extend(w for w in words if len(w) >= MIN_TOKEN_LENGTH)
    return list(dict.fromkeys(candidates))


def _split_punctuation(token: str) -> Tuple[str, str, str]:
    core = token.strip(_TOKEN_STRIP)
    if not core:
        return token, "", ""
    start = token.index(core)
    return token[:start], core, token[start + len(core):]


class FuzzyEntityCorrector:
    """
    Corrects likely typos in a query before it is preprocessed.

    Multi-word vendor and product names are matched first with a sliding
    window; remaining tokens are checked against the static dictionary,
    phonetically against vendor names and approximately against the cached
    vocabulary. Lookup failures never escape: the affected token is left as
    typed.
    """

    def __init__(
        self,
        vocabulary: VocabularyCache,
        dictionary: Optional[Sequence[str]] = None,
        use_phonetic: bool = True
    ):
        """
        Initialize fuzzy corrector.

        Args:
            vocabulary: Cache of vendor and product names
            dictionary: Static words that are never treated as typos
            use_phonetic: Whether to ask the store for phonetic vendor matches
        """
        self.vocabulary = vocabulary
        self.dictionary: List[str] = list(dictionary or STATIC_DICTIONARY)
        self._dictionary_set: Set[str] = set(self.dictionary)
        self.use_phonetic = use_phonetic
        self._words_snapshot = None
        self._vocabulary_words: Set[str] = set()

    async def correct(self, query: str) -> str:
        """
        Correct typos in a free-form query.

        Re-running on already corrected text leaves it unchanged as long as
        the vocabulary does not change in between.
        """
        if not query or not query.strip():
            return query

        await self.vocabulary.refresh_if_stale()
        logger.debug(f"Correcting query: '{query}'")

        corrected, claimed, matched = self.correct_phrases(query)

        pieces = re.split(r'(\s+)', corrected)
        token_index = -1
        for i, piece in enumerate(pieces):
            if not piece or piece.isspace():
                continue
            token_index += 1
            if token_index in claimed or self._should_skip(piece):
                continue

            prefix, core, suffix = _split_punctuation(piece)
            if len(core) < MIN_TOKEN_LENGTH:
                continue

            result = await self.correct_token(core, context=corrected, matched=matched)
            if result.was_changed:
                pieces[i] = prefix + result.corrected + suffix

        output = ''.join(pieces)
        if output != query:
            logger.info(f"Corrected query: '{query}' -> '{output}'")
        return output

    def _should_skip(self, token: str) -> bool:
        return (
            len(token) < MIN_TOKEN_LENGTH
            or bool(_NUMERIC.match(token))
            or bool(_CURRENCY_SYMBOLS.search(token))
        )

    def correct_phrases(self, query: str) -> Tuple[str, Set[int], List[str]]:
        """
        Replace fuzzy mentions of multi-word vendor and product names.

        Vendors are processed before products, each in vocabulary order.
        Windows that already spell a known name exactly are claimed before
        any fuzzy replacement so a near neighbour cannot overwrite them.

        Returns:
            Corrected text, indices of claimed tokens and the names matched
        """
        names = [
            name for name in list(self.vocabulary.vendors) + list(self.vocabulary.products)
            if len(name.split()) >= 2
        ]
        text = query
        claimed: Set[int] = set()
        matched: List[str] = []

        for name in names:
            span = self._find_window(text, name, claimed, exact=True)
            if span is not None:
                claimed.update(span)
                matched.append(name)

        for name in names:
            if name in matched:
                continue
            span = self._find_window(text, name, claimed, exact=False)
            if span is None:
                continue
            text = self._replace_window(text, span, name)
            claimed.update(span)
            matched.append(name)
            logger.debug(f"Multi-word match: '{name}' at tokens {sorted(span)}")

        return text, claimed, matched

    def match_phrase(self, text: str, phrase: str) -> Optional[str]:
        """
        Find the first window of ``text`` that fuzzily matches ``phrase``.

        Every token pair must reach the per-token similarity and the summed
        edit distance must stay within two edits per token.

        Returns:
            The matched window as it appears in ``text``, or None
        """
        span = self._find_window(text, phrase, set(), exact=False)
        if span is None:
            return None
        tokens = [m.group(0) for m in _TOKENS.finditer(text)]
        return ' '.join(tokens[i] for i in sorted(span))

    def _find_window(self, text: str, phrase: str, claimed: Set[int], exact: bool) -> Optional[range]:
        target = phrase.split()
        tokens = [m.group(0).strip(_TOKEN_STRIP) for m in _TOKENS.finditer(text)]
        size = len(target)

        for start in range(len(tokens) - size + 1):
            window = range(start, start + size)
            if claimed.intersection(window):
                continue
            candidate = tokens[start:start + size]
            if exact:
                if all(a.lower() == b.lower() for a, b in zip(candidate, target)):
                    return window
                continue
            if self._window_matches(candidate, target):
                return window
        return None

    def _window_matches(self, candidate: List[str], target: List[str]) -> bool:
        total_distance = 0
        for word, expected in zip(candidate, target):
            if not word or similarity(word, expected) < PHRASE_TOKEN_SIMILARITY:
                return False
            total_distance += Levenshtein.distance(word.lower(), expected.lower())
        return total_distance <= PHRASE_DISTANCE_PER_TOKEN * len(target)

    def _replace_window(self, text: str, window: range, name: str) -> str:
        matches = list(_TOKENS.finditer(text))
        first, last = matches[window.start], matches[window.stop - 1]
        prefix, _, _ = _split_punctuation(first.group(0))
        _, _, suffix = _split_punctuation(last.group(0))
        start = first.start() + len(prefix)
        end = last.end() - len(suffix)
        return text[:start] + name + text[end:]

    async def correct_token(
        self,
        token: str,
        context: str = "",
        matched: Optional[Sequence[str]] = None
    ) -> FuzzyMatchResult:
        """
        Correct a single token.

        Tokens that already spell a dictionary word or a word of a known
        vendor or product are kept as typed.
        Capitalized tokens are treated as proper nouns: phonetic vendor
        matching first, then the vocabulary, never the static dictionary.
        Lowercase tokens try the static dictionary first.

        Args:
            token: Token without surrounding punctuation
            context: Full query, used to decide whether a vendor is already present
            matched: Names already matched in the query
        """
        lowered = token.lower()
        if lowered in self._dictionary_set or lowered in self.vocabulary_words():
            return FuzzyMatchResult.unchanged(token)

        if token[0].isupper():
            if self.use_phonetic:
                result = await self.match_vendor_phonetic(token, context, matched or ())
                if result.was_changed:
                    logger.debug(f"Phonetic vendor match: '{token}' -> '{result.corrected}'")
                    return result
            return self.match_vocabulary(token)

        result = self.match_static(token)
        if result.was_changed:
            logger.debug(f"Dictionary match: '{token}' -> '{result.corrected}'")
            return result

        return self.match_vocabulary(token)

    def vocabulary_words(self) -> Set[str]:
        """Lowercased words of every cached vendor and product name."""
        snapshot = self.vocabulary.snapshot
        if snapshot is not self._words_snapshot:
            self._vocabulary_words = {
                word.strip(PUNCTUATION).lower()
                for name in snapshot.vendors + snapshot.products
                for word in name.split()
            }
            self._words_snapshot = snapshot
        return self._vocabulary_words

    def match_static(self, word: str) -> FuzzyMatchResult:
        """Closest static dictionary word by edit distance, with the input's casing."""
        lowered = word.lower()
        best = process.extractOne(lowered, self.dictionary, scorer=Levenshtein.distance)
        if best is None:
            return FuzzyMatchResult.unchanged(word)

        match, distance, _ = best
        confidence = 1.0 - distance / max(len(word), len(match))
        length_diff = abs(len(word) - len(match))
        accepted = (distance <= STATIC_MAX_DISTANCE and length_diff <= STATIC_MAX_LENGTH_DIFF) \
            or confidence >= STATIC_MIN_SIMILARITY

        if not accepted or match == lowered or confidence < STATIC_MIN_CONFIDENCE:
            return FuzzyMatchResult.unchanged(word)

        return FuzzyMatchResult(
            original=word,
            corrected=preserve_case(word, match),
            was_changed=True,
            confidence=confidence
        )

    def match_vocabulary(self, word: str) -> FuzzyMatchResult:
        """Try vendor names, then product names."""
        result = self.match_vendor(word)
        if result.was_changed:
            logger.debug(f"Vendor match: '{word}' -> '{result.corrected}'")
            return result

        result = self.match_product(word)
        if result.was_changed:
            logger.debug(f"Product match: '{word}' -> '{result.corrected}'")
        return result

    def match_vendor(self, word: str) -> FuzzyMatchResult:
        return self._match_choices(word, self.vocabulary.vendors)

    def match_product(self, word: str) -> FuzzyMatchResult:
        return self._match_choices(word, self.vocabulary.products)

    def _match_choices(self, word: str, choices: Sequence[str]) -> FuzzyMatchResult:
        """
        Closest full name or single word of a name by normalized edit distance.

        A hit on one word of a multi-word name returns only that word so a
        single typed token never grows into a whole name.
        """
        candidates = _vocabulary_candidates(choices)
        if not candidates:
            return FuzzyMatchResult.unchanged(word)

        best = process.extractOne(
            word,
            candidates,
            scorer=Levenshtein.normalized_similarity,
            processor=utils.default_process,
            score_cutoff=VOCABULARY_MIN_CONFIDENCE
        )
        if best is None:
            return FuzzyMatchResult.unchanged(word)

        match, confidence, _ = best
        if confidence <= VOCABULARY_MIN_CONFIDENCE or match.lower() == word.lower():
            return FuzzyMatchResult.unchanged(word)

        return FuzzyMatchResult(original=word, corrected=match, was_changed=True, confidence=confidence)

    async def match_vendor_phonetic(
        self,
        token: str,
        context: str = "",
        matched: Sequence[str] = ()
    ) -> FuzzyMatchResult:
        """
        Match a token against the first token of every vendor name by sound.

        A multi-word vendor that is not yet in the query is only returned
        in full when confidence reaches 0.95; otherwise just its first token
        is substituted.
        """
        store = self.vocabulary.store
        if not store.supports_phonetic:
            return FuzzyMatchResult.unchanged(token)

        try:
            candidates = await store.phonetic_vendor_candidates(token)
        except PhoneticUnavailableError as e:
            logger.debug(f"Phonetic matching unavailable: {str(e)}")
            return FuzzyMatchResult.unchanged(token)
        except Exception as e:
            logger.warning(f"Phonetic lookup failed for '{token}': {str(e)}")
            return FuzzyMatchResult.unchanged(token)

        if not candidates:
            return FuzzyMatchResult.unchanged(token)

        best = candidates[0]
        confidence = phonetic_confidence(token, best)
        accepted = best.soundex_match or best.metaphone_match or (
            best.edit_distance <= PHONETIC_MAX_DISTANCE and confidence > PHONETIC_MIN_SCORE
        )
        if not accepted:
            return FuzzyMatchResult.unchanged(token)

        vendor_name = best.vendor_name.strip()
        corrected = vendor_name
        if len(vendor_name.split()) > 1:
            already_present = vendor_name.lower() in context.lower() or vendor_name in matched
            if not already_present and confidence < PHONETIC_FULL_NAME_CONFIDENCE:
                corrected = best.first_token

        return FuzzyMatchResult(
            original=token,
            corrected=corrected,
            was_changed=corrected.lower() != token.lower(),
            confidence=confidence
        )
