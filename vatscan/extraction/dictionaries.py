"""Term dictionaries for multi-language receipt parsing.

Static vocabulary per language (VAT, total and subtotal labels and the
related exclusion words), a currency marker table and per-country VAT rate
tables. The built-in data can be extended or overridden with a JSON file
(Settings.term_dictionary_path) without code changes, e.g.:

    {
      "languages": {
        "fi": {"country": "FI", "vat": ["alv", "arvonlisävero"],
               "total": ["yhteensä"], "subtotal": ["veroton"]}
      },
      "countries": {"FI": {"currency": "EUR", "common_rates": ["25.5", "14", "10", "0"]}}
    }

Dictionaries are built once per process and never mutated afterwards.
"""

import json
import logging
import re
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class TermCategory(str, Enum):
    """Categories of label vocabulary."""

    VAT = "vat"
    TOTAL = "total"
    SUBTOTAL = "subtotal"


class UnknownLanguageError(KeyError):
    """Raised when a dictionary lookup names a language that is not registered."""


class LanguageTerms(BaseModel):
    """Vocabulary for one language.

    Attributes:
        country: ISO 3166 country the language maps to (used for VAT rates)
        vat: Words naming the tax itself (used for language detection)
        total: Labels of the amount including tax
        subtotal: Labels of the amount before tax
        tax_amount: Labels that explicitly name the tax amount
        tax_id: Labels of tax registration numbers (never amounts)
        amount_words: Generic "amount" words that raise confidence on a tax line
        rate_words: Words for "rate"/"percent" used in VAT table headers
        table_net: Net-column header fragments
        table_gross: Total-column header fragments

    vat, total, subtotal and tax_amount match as whole words; the remaining
    fields are stems matched as substrings.
    """

    model_config = ConfigDict(frozen=True)

    country: str | None = None
    vat: tuple[str, ...] = ()
    total: tuple[str, ...] = ()
    subtotal: tuple[str, ...] = ()
    tax_amount: tuple[str, ...] = ()
    tax_id: tuple[str, ...] = ()
    amount_words: tuple[str, ...] = ()
    rate_words: tuple[str, ...] = ()
    table_net: tuple[str, ...] = ()
    table_gross: tuple[str, ...] = ()

    def terms(self, category: TermCategory) -> tuple[str, ...]:
        """Return the terms for one of the core categories."""
        return getattr(self, category.value)


class CountryProfile(BaseModel):
    """Currency and VAT rates of one country."""

    model_config = ConfigDict(frozen=True)

    currency: str
    common_rates: tuple[Decimal, ...] = ()
    # OCR misreads of a rate, e.g. "28%" read for "24%"
    rate_corrections: dict[Decimal, Decimal] = Field(default_factory=dict)


class TermDictionary(BaseModel):
    """All static vocabulary consulted by the extraction pipeline."""

    model_config = ConfigDict(frozen=True)

    languages: dict[str, LanguageTerms]
    currencies: dict[str, tuple[str, ...]]
    countries: dict[str, CountryProfile]
    known_vendors: tuple[str, ...] = ()

    def language(self, code: str) -> LanguageTerms:
        """Look up a registered language.

        Raises:
            UnknownLanguageError: If the language is not registered
        """
        try:
            return self.languages[code]
        except KeyError:
            raise UnknownLanguageError(code) from None

    def country_for(self, language: str | None) -> str | None:
        if language is None:
            return None
        return self.language(language).country

    def country(self, code: str | None) -> CountryProfile | None:
        if code is None:
            return None
        return self.countries.get(code)

    def common_rates(self, country: str | None) -> tuple[Decimal, ...]:
        profile = self.country(country)
        return profile.common_rates if profile else ()

    def correct_rate(
        self, rate: Decimal, country: str | None, restrict: bool = False
    ) -> Decimal | None:
        """Map a known OCR misread of a rate to the real rate.

        With restrict, rates that are still not common for the country are
        rejected (None). Countries without a profile pass every rate through.
        """
        profile = self.country(country)
        if profile is None:
            return rate
        corrected = profile.rate_corrections.get(rate, rate)
        if corrected != rate:
            logger.info(f"Rate correction for {country}: {rate}% -> {corrected}%")
        if restrict and profile.common_rates and corrected not in profile.common_rates:
            logger.debug(f"Rejecting uncommon VAT rate {corrected}% for {country}")
            return None
        return corrected

    def all_terms(self, field: str) -> tuple[str, ...]:
        """Union of one vocabulary field across every language, in registration order."""
        seen: dict[str, None] = {}
        for terms in self.languages.values():
            for term in getattr(terms, field):
                seen.setdefault(term.lower(), None)
        return tuple(seen)


BUILTIN_DICTIONARY: dict = {
    "languages": {
        "is": {
            "country": "IS",
            "vat": ["vsk", "virðisaukaskattur", "virðisaukaskatts"],
            "total": [
                "til greiðslu",
                "til greidslu",
                "samtals",
                "samtals með vsk",
                "heild",
                "heild með vsk",
                "heildarupphæð",
                "heildarverð",
                "alls",
                "total",
            ],
            "subtotal": [
                "án vsk",
                "an vsk",
                "verð án vsk",
                "upphæð án vsk",
                "nettó",
                "netto",
                "undirheild",
                "subtotal",
            ],
            "tax_amount": ["vsk-upphæð", "vsk upphæð", "vskupphæð", "upphæð vsk", "vsk-upph"],
            "tax_id": ["vsk nr", "vsk-nr", "vsk.nr", "vsknr", "vsk númer"],
            "amount_words": ["upphæð", "upph"],
            "rate_words": ["prósenta", "prós", "hlutfall"],
            "table_net": ["nettó", "netto", "nett", "án vsk"],
            "table_gross": ["upphæð", "upph", "heild", "samtals"],
        },
        "en": {
            "country": "GB",
            "vat": ["vat", "tax", "sales tax", "value added tax"],
            "total": ["total", "grand total", "amount due", "total due", "balance due", "sum"],
            "subtotal": ["subtotal", "sub-total", "sub total", "net", "before tax", "excl. tax"],
            "tax_amount": ["vat amount", "tax amount", "total vat", "total tax"],
            "tax_id": ["vat no", "vat reg", "vat number", "vat id", "tax id", "vat nr"],
            "amount_words": ["amount"],
            "rate_words": ["rate", "percent"],
            "table_net": ["net", "excl"],
            "table_gross": ["total", "gross", "amount", "incl"],
        },
        "da": {
            "country": "DK",
            "vat": ["moms", "merværdiafgift"],
            "total": ["total", "i alt", "til betaling"],
            "subtotal": ["subtotal", "ekskl. moms", "netto"],
            "tax_amount": ["momsbeløb", "moms beløb"],
            "tax_id": ["cvr", "cvr-nr", "se-nr"],
            "amount_words": ["beløb"],
            "rate_words": ["sats", "pct"],
            "table_net": ["netto", "ekskl"],
            "table_gross": ["beløb", "i alt", "total"],
        },
        "no": {
            "country": "NO",
            "vat": ["mva", "merverdiavgift"],
            "total": ["totalt", "til betaling", "sum"],
            "subtotal": ["subtotal", "ekskl. mva", "netto"],
            "tax_amount": ["mva-beløp", "mva beløp"],
            "tax_id": ["org.nr", "org nr", "foretaksregisteret"],
            "amount_words": ["beløp"],
            "rate_words": ["sats"],
            "table_net": ["netto", "grunnlag"],
            "table_gross": ["beløp", "brutto", "totalt"],
        },
        "sv": {
            "country": "SE",
            "vat": ["moms", "mervärdesskatt"],
            "total": ["totalt", "att betala", "summa"],
            "subtotal": ["subtotal", "exkl. moms", "netto"],
            "tax_amount": ["momsbelopp"],
            "tax_id": ["org.nr", "momsreg.nr", "momsregnr"],
            "amount_words": ["belopp"],
            "rate_words": ["sats", "moms%"],
            "table_net": ["netto", "exkl"],
            "table_gross": ["brutto", "belopp", "totalt"],
        },
        "de": {
            "country": "DE",
            "vat": ["mwst", "mehrwertsteuer", "umsatzsteuer", "ust"],
            "total": ["gesamt", "summe", "zu zahlen", "total", "gesamtbetrag"],
            "subtotal": ["zwischensumme", "netto", "ohne mwst"],
            "tax_amount": ["mwst-betrag", "mwst betrag", "steuerbetrag"],
            "tax_id": ["ust-idnr", "ust-id", "steuernr", "st.-nr"],
            "amount_words": ["betrag"],
            "rate_words": ["satz"],
            "table_net": ["netto"],
            "table_gross": ["brutto", "betrag", "gesamt"],
        },
        "fr": {
            "country": "FR",
            "vat": ["tva", "taxe sur la valeur ajoutée"],
            "total": ["total", "montant total", "à payer", "total ttc"],
            "subtotal": ["sous-total", "hors taxes", "total ht", "net"],
            "tax_amount": ["montant tva", "total tva"],
            "tax_id": ["n° tva", "siret", "tva intracom"],
            "amount_words": ["montant"],
            "rate_words": ["taux"],
            "table_net": ["ht", "net"],
            "table_gross": ["ttc", "montant", "total"],
        },
        "es": {
            "country": "ES",
            "vat": ["iva", "impuesto sobre el valor añadido"],
            "total": ["total", "importe total", "a pagar"],
            "subtotal": ["subtotal", "sin iva", "neto", "base imponible"],
            "tax_amount": ["cuota iva", "importe iva"],
            "tax_id": ["nif", "cif"],
            "amount_words": ["importe", "cuota"],
            "rate_words": ["tipo"],
            "table_net": ["base", "neto"],
            "table_gross": ["total", "importe"],
        },
        "it": {
            "country": "IT",
            "vat": ["iva", "imposta sul valore aggiunto"],
            "total": ["totale", "importo totale", "da pagare"],
            "subtotal": ["subtotale", "senza iva", "netto", "imponibile"],
            "tax_amount": ["importo iva", "totale iva"],
            "tax_id": ["p.iva", "partita iva", "p. iva"],
            "amount_words": ["importo"],
            "rate_words": ["aliquota"],
            "table_net": ["imponibile", "netto"],
            "table_gross": ["totale", "importo"],
        },
    },
    "currencies": {
        "ISK": ["kr", "krónur", "króna", "isk"],
        "EUR": ["€", "eur", "euro", "euros"],
        "USD": ["$", "usd", "dollar", "dollars"],
        "GBP": ["£", "gbp", "pound", "pounds"],
        "DKK": ["kr", "dkk", "danske kroner"],
        "NOK": ["kr", "nok", "norske kroner"],
        "SEK": ["kr", "sek", "svenska kronor"],
        "CHF": ["chf", "franc", "francs"],
    },
    "countries": {
        "IS": {
            "currency": "ISK",
            "common_rates": ["24", "11", "0"],
            "rate_corrections": {
                "28": "24",
                "21": "24",
                "26": "24",
                "23": "24",
                "25": "24",
                "17": "11",
                "71": "11",
                "16": "11",
                "12": "11",
            },
        },
        "DK": {"currency": "DKK", "common_rates": ["25", "0"]},
        "NO": {"currency": "NOK", "common_rates": ["25", "15", "12", "0"]},
        "SE": {"currency": "SEK", "common_rates": ["25", "12", "6", "0"]},
        "DE": {"currency": "EUR", "common_rates": ["19", "7", "0"]},
        "FR": {"currency": "EUR", "common_rates": ["20", "10", "5.5", "2.1", "0"]},
        "ES": {"currency": "EUR", "common_rates": ["21", "10", "4", "0"]},
        "IT": {"currency": "EUR", "common_rates": ["22", "10", "5", "4", "0"]},
        "GB": {"currency": "GBP", "common_rates": ["20", "5", "0"]},
        "US": {"currency": "USD", "common_rates": ["8.5", "7", "6", "0"]},
    },
    "known_vendors": [
        "Bónus",
        "Krónan",
        "Hagkaup",
        "Costco",
        "Rúmfatalagerinn",
        "N1",
        "Olís",
        "Orkan",
        "Atlantsolía",
        "Byko",
        "Húsasmiðjan",
        "Blómaval",
        "Lyf og heilsa",
        "Subway",
        "McDonald's",
        "KFC",
        "Domino's",
        "Elko",
        "Síminn",
        "Vodafone",
        "Nova",
        "Penninn",
        "Eymundsson",
    ],
}


def _merge(base: dict, override: dict) -> dict:
    """Merge override into base: nested mappings merge, other values replace."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def build_term_dictionary(overrides: dict | None = None) -> TermDictionary:
    """Validate the built-in data, optionally merged with overrides.

    Raises:
        pydantic.ValidationError: If the merged data is malformed
    """
    data = _merge(BUILTIN_DICTIONARY, overrides) if overrides else BUILTIN_DICTIONARY
    return TermDictionary.model_validate(data)


def load_term_dictionary(path: Path | None = None) -> TermDictionary:
    """Load the term dictionary, merging a JSON override file if given.

    Args:
        path: Optional JSON file with the same shape as BUILTIN_DICTIONARY

    Returns:
        Validated, immutable TermDictionary
    """
    if path is None:
        return build_term_dictionary()

    overrides = json.loads(Path(path).read_text(encoding="utf-8"))
    dictionary = build_term_dictionary(overrides)
    logger.info(
        f"Loaded term dictionary overrides from {path} "
        f"({len(dictionary.languages)} languages, {len(dictionary.countries)} countries)"
    )
    return dictionary


@lru_cache(maxsize=None)
def get_term_dictionary(path: Path | None = None) -> TermDictionary:
    """Process-wide dictionary, built once per override path."""
    return load_term_dictionary(path)


def term_pattern(term: str) -> str:
    """Regex for a term matched case-insensitively as a whole word.

    Word edges are letters only, so "VSK24" or "1.500kr" still match, and
    internal whitespace is flexible ("til  greiðslu", "ánvsk").
    """
    parts = [re.escape(part) for part in term.lower().split()]
    body = r"\s*".join(parts)
    return rf"(?<![^\W\d_]){body}(?![^\W\d_])"


@lru_cache(maxsize=1024)
def compile_terms(terms: tuple[str, ...]) -> re.Pattern[str] | None:
    """Compile a term list into one alternation, longest terms first."""
    if not terms:
        return None
    ordered = sorted(terms, key=len, reverse=True)
    return re.compile("|".join(term_pattern(t) for t in ordered), re.IGNORECASE)


def contains_term(text: str, terms: tuple[str, ...]) -> bool:
    pattern = compile_terms(terms)
    return bool(pattern and pattern.search(text))


def count_terms(text: str, terms: tuple[str, ...]) -> int:
    """Count whole-word occurrences of any of the terms."""
    pattern = compile_terms(terms)
    return len(pattern.findall(text)) if pattern else 0


def contains_stem(text: str, stems: tuple[str, ...]) -> bool:
    """Plain case-insensitive substring test, for word stems such as "upph"."""
    lowered = text.lower()
    return any(stem.lower() in lowered for stem in stems)
