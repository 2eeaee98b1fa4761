"""Stage 4: multi-locale currency amount parsing and total selection."""

from __future__ import annotations

import re
from dataclasses import dataclass

from receiptsieve.models import AmountCandidate, Language

# Thousands groups: "1.217", "1 217", "1217".
_EU_WHOLE = r"\d{1,3}(?:[ .]\d{3})+|\d+"
_US_WHOLE = r"\d{1,3}(?:,\d{3})+|\d+"
_ANY_WHOLE = r"\d{1,3}(?:[ .,]\d{3})+|\d+"
# Two decimals not followed by more digits or by another separated group
# (keeps "12.03.2025" from parsing as 12.03).
_DEC = r"(?!\d|[.,]\d)"
_NOT_MID_NUMBER = r"(?<![\d.,])"
_CODES = r"NOK|SEK|DKK|EUR|USD|GBP|CHF"

_FOREIGN_PREFIX = "".join(
    f"(?<!{re.escape(m)})(?<!{re.escape(m)} )"
    for m in ("€", "$", "£", "EUR", "USD", "SEK", "DKK", "GBP", "CHF")
)
_FOREIGN_SUFFIX = r"(?!\s*(?:€|\$|£|(?:EUR|USD|SEK|DKK|GBP|CHF)\b))"

_MARKERS = {"€": "EUR", "$": "USD", "£": "GBP", "KR": "NOK", "KR.": "NOK"}


@dataclass(frozen=True)
class AmountPattern:
    """One locale recognizer: the first pattern that matches a text wins."""

    name: str
    regex: re.Pattern
    currency: str | None = None  # fixed currency, else read from the code group
    marker_required: bool = True  # False when the match may carry no symbol/code

    def match(self, text: str) -> AmountCandidate | None:
        m = self.regex.search(text)
        if not m:
            return None
        whole = _first_group(m, "whole")
        if whole is None:
            return None
        dec = _first_group(m, "dec") or "00"
        try:
            amount = float(f"{re.sub(r'[^0-9]', '', whole)}.{dec}")
        except ValueError:
            return None

        marker = _first_group(m, "marker")
        code = _first_group(m, "code")
        currency = self.currency
        if code:
            currency = _MARKERS.get(code.upper(), code.upper())
        recognized = bool(code or marker) or self.marker_required

        return _scored(text, amount, currency, recognized)


def _first_group(m: re.Match, prefix: str) -> str | None:
    for name, value in m.groupdict().items():
        if value is not None and name.rstrip("0123456789") == prefix:
            return value
    return None


def _scored(raw: str, amount: float, currency: str | None, recognized: bool) -> AmountCandidate:
    confidence = 0.5
    if currency and recognized:
        confidence += 0.3
    if 0 < amount < 1_000_000:
        confidence += 0.2
    return AmountCandidate(raw=raw, amount=amount, currency=currency, confidence=round(confidence, 2))


def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


AMOUNT_PATTERNS: list[AmountPattern] = [
    # "kr 1.217,00", "1 217,00 kr", "NOK 99,90"; an untagged comma-decimal
    # defaults to NOK unless another currency sits next to it.
    AmountPattern(
        name="norwegian",
        regex=_compile(
            rf"(?P<marker>\b(?:kr|nok)\.?\s*)?{_FOREIGN_PREFIX}{_NOT_MID_NUMBER}"
            rf"(?P<whole>{_EU_WHOLE}),(?P<dec>\d{{2}}){_DEC}"
            rf"(?:\s*(?P<marker2>\b(?:kr|nok)\b))?{_FOREIGN_SUFFIX}"
        ),
        currency="NOK",
        marker_required=False,
    ),
    # Whole kroner with an explicit marker: "kr 1 217", "1217,- kr".
    AmountPattern(
        name="norwegian_whole",
        regex=_compile(
            rf"\b(?:kr|nok)\.?\s*(?P<whole>{_EU_WHOLE})(?:,-)?(?![\d.,]\d)"
            rf"|{_NOT_MID_NUMBER}(?P<whole2>{_EU_WHOLE})(?:,-)?\s*(?:kr|nok)\b"
        ),
        currency="NOK",
    ),
    # "€86,98", "86,98 €", "EUR 1.234,50", "€86.98".
    AmountPattern(
        name="euro",
        regex=_compile(
            rf"(?:€|\bEUR\b)\s*(?P<whole>{_ANY_WHOLE})[.,](?P<dec>\d{{2}}){_DEC}"
            rf"|{_NOT_MID_NUMBER}(?P<whole2>{_ANY_WHOLE})[.,](?P<dec2>\d{{2}}){_DEC}\s*(?:€|EUR\b)"
        ),
        currency="EUR",
    ),
    # "$1,234.56", "USD 25", "1234.56 USD".
    AmountPattern(
        name="us_dollar",
        regex=_compile(
            rf"(?:\$|\bUSD\b)\s*(?P<whole>{_US_WHOLE})(?:\.(?P<dec>\d{{2}}))?(?![\d,]\d|\.\d)"
            rf"|{_NOT_MID_NUMBER}(?P<whole2>{_US_WHOLE})\.(?P<dec2>\d{{2}}){_DEC}\s*(?:\$|USD\b)"
        ),
        currency="USD",
    ),
    # US decimal style with a code: "1,435.00 NOK", "SEK 1,435.00", "£12.99".
    AmountPattern(
        name="code_us_style",
        regex=_compile(
            rf"{_NOT_MID_NUMBER}(?P<whole>{_US_WHOLE})\.(?P<dec>\d{{2}}){_DEC}\s*(?P<code>{_CODES})\b"
            rf"|(?P<code2>\b(?:{_CODES})\b|£)\s*(?P<whole2>{_US_WHOLE})\.(?P<dec2>\d{{2}}){_DEC}"
        ),
    ),
    # EU decimal style with a code: "1.435,00 SEK", "DKK 1.435,00".
    AmountPattern(
        name="code_eu_style",
        regex=_compile(
            rf"{_NOT_MID_NUMBER}(?P<whole>{_EU_WHOLE}),(?P<dec>\d{{2}}){_DEC}\s*(?P<code>{_CODES})\b"
            rf"|(?P<code2>\b(?:{_CODES})\b|£)\s*(?P<whole2>{_EU_WHOLE}),(?P<dec2>\d{{2}}){_DEC}"
        ),
    ),
    # Last resort: any dot-decimal number, currency unknown.
    AmountPattern(
        name="generic",
        regex=_compile(rf"{_NOT_MID_NUMBER}(?P<whole>\d{{1,3}}(?:[ ,]\d{{3}})+|\d+)\.(?P<dec>\d{{2}}){_DEC}"),
        marker_required=False,
    ),
]

_PRICE_KEYWORDS = re.compile(r"total|sum|beløp|totalt|delsum|amount|price|pris", re.IGNORECASE)
_CURRENCY_MARKERS = re.compile(r"\bkr\b|€|\$|£|\b(?:NOK|EUR|USD|SEK|DKK|GBP|CHF)\b", re.IGNORECASE)
_TOTAL_KEYWORDS = re.compile(
    r"\b(?:grand\s+total|totalt|totalsum|total|sum|til\s+sammen|å\s+betale|"
    r"amount\s+due|summa|i\s+alt)\b",
    re.IGNORECASE,
)


def normalize_currency(text: str) -> AmountCandidate:
    """Parse the first recognizable amount in text.

    Examples:
        "kr 1.217,00"   -> 1217.00 NOK
        "€86,98"        -> 86.98 EUR
        "$1,234.56"     -> 1234.56 USD
        "1,435.00 NOK"  -> 1435.00 NOK
    """
    if not text or not text.strip():
        return AmountCandidate(raw=text or "", amount=None, currency=None, confidence=0.0)

    clean = text.strip()
    for pattern in AMOUNT_PATTERNS:
        candidate = pattern.match(clean)
        if candidate is not None:
            return candidate

    return AmountCandidate(raw=clean, amount=None, currency=None, confidence=0.0)


def extract_all_amounts(text: str) -> list[AmountCandidate]:
    """Parse amounts from lines that mention a price keyword or a currency marker."""
    amounts: list[AmountCandidate] = []
    for line in (text or "").split("\n"):
        if not (_PRICE_KEYWORDS.search(line) or _CURRENCY_MARKERS.search(line)):
            continue
        candidate = normalize_currency(line)
        if candidate.amount is not None:
            amounts.append(candidate)
    return amounts


def find_total_amount(text: str, amounts: list[AmountCandidate]) -> AmountCandidate | None:
    """Pick the most likely order total.

    A line with a total keyword (or the line right after it) wins with a
    confidence boost; otherwise the largest candidate is taken, which is a
    heuristic rather than a guarantee.
    """
    if not amounts:
        return None

    lines = (text or "").split("\n")
    for i, line in enumerate(lines):
        if not _TOTAL_KEYWORDS.search(line):
            continue
        for candidate_line in (line, lines[i + 1] if i + 1 < len(lines) else ""):
            candidate = normalize_currency(candidate_line)
            if candidate.amount is not None:
                return candidate.with_confidence(min(1.0, round(candidate.confidence + 0.2, 2)))

    return max(amounts, key=lambda a: a.amount or 0)


def infer_currency(language: Language | str, text: str) -> str | None:
    """Guess the currency from explicit mentions, then from the email's language."""
    if re.search(r"\bNOK\b|kroner|norsk", text):
        return "NOK"
    if re.search(r"\bEUR\b|euro|€", text):
        return "EUR"
    if re.search(r"\bUSD\b|dollar|\$", text):
        return "USD"
    if re.search(r"\bSEK\b|kronor|svensk", text):
        return "SEK"
    if re.search(r"\bDKK\b|danske", text):
        return "DKK"
    if re.search(r"\bGBP\b|pound|£", text):
        return "GBP"

    language = Language(language)
    if language == Language.NORWEGIAN:
        return "NOK"
    if language == Language.SWEDISH:
        return "SEK"
    if language == Language.DANISH:
        return "DKK"
    if language == Language.ENGLISH:
        if re.search(r"\.co\.uk|\.uk\b", text, re.IGNORECASE):
            return "GBP"
        if re.search(r"\.eu\b|europa", text, re.IGNORECASE):
            return "EUR"
    return None


# (prefix, suffix, thousands separator, decimal separator)
_DISPLAY_FORMATS = {
    "NOK": ("kr ", "", " ", ","),
    "SEK": ("", " kr", " ", ","),
    "DKK": ("", " kr.", ".", ","),
    "EUR": ("", " €", ".", ","),
    "USD": ("$", "", ",", "."),
    "GBP": ("£", "", ",", "."),
}


def format_currency(amount: float, currency: str | None) -> str:
    """Format an amount the way the currency's home locale writes it."""
    if not currency or currency.upper() not in _DISPLAY_FORMATS:
        return f"{currency or ''} {amount:.2f}".strip()
    prefix, suffix, thousands, decimal = _DISPLAY_FORMATS[currency.upper()]
    whole, frac = f"{amount:,.2f}".split(".")
    whole = whole.replace(",", thousands)
    return f"{prefix}{whole}{decimal}{frac}{suffix}"
