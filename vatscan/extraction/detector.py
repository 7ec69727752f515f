"""Language and currency detection by term frequency.

A cheap, explainable vote: each language scores the number of whole-word
occurrences of its VAT terms in the text. Misdetection only changes which
term list the line extractor tries first.
"""

import logging
import re

from vatscan.extraction.dictionaries import TermDictionary, count_terms

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "EUR"


def detect_language(text: str, dictionary: TermDictionary) -> str | None:
    """Pick the language whose VAT terms occur most often.

    Ties go to the language registered first. Returns None when no language
    scores above zero.
    """
    scores = {code: count_terms(text, terms.vat) for code, terms in dictionary.languages.items()}
    logger.debug(f"Language detection scores: {scores}")

    best = max(scores, key=lambda code: scores[code], default=None)
    if best is None or scores[best] == 0:
        return None
    return best


def _count_marker(text: str, marker: str) -> int:
    if any(ch.isalpha() for ch in marker):
        return count_terms(text, (marker,))
    return len(re.findall(re.escape(marker), text))


def detect_currency(text: str, dictionary: TermDictionary, language: str | None = None) -> str:
    """Pick the currency whose symbols/words occur most often.

    Markers such as "kr" are shared by several currencies; a tie is broken in
    favour of the detected language's home currency, then registration order.
    Defaults to EUR when no marker is found.
    """
    scores = {
        code: sum(_count_marker(text, marker) for marker in markers)
        for code, markers in dictionary.currencies.items()
    }
    logger.debug(f"Currency detection scores: {scores}")

    top = max(scores.values(), default=0)
    if top == 0:
        return DEFAULT_CURRENCY

    leaders = [code for code, score in scores.items() if score == top]
    country = dictionary.country(dictionary.country_for(language))
    if country is not None and country.currency in leaders:
        return country.currency
    return leaders[0]


def detect(text: str, dictionary: TermDictionary) -> tuple[str | None, str]:
    """Detect (language, currency) for a receipt text."""
    language = detect_language(text, dictionary)
    currency = detect_currency(text, dictionary, language)
    logger.debug(f"Detected language={language} currency={currency}")
    return language, currency
