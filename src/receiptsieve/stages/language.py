"""Stage 3: keyword-frequency language guess, used only as an extraction hint."""

from __future__ import annotations

from receiptsieve.models import Language

# Listing order is the tie-break order.
LANGUAGE_INDICATORS: dict[Language, tuple[str, ...]] = {
    Language.NORWEGIAN: (
        "takk for", "bestilling", "ordrenummer", "bekreftelse", "levering",
        "forsendelse", "totalt", "delsum", "angrerett", "dager", "kjøpet",
    ),
    Language.ENGLISH: (
        "thank you", "order", "confirmation", "purchase", "total",
        "shipping", "delivery", "receipt",
    ),
    Language.SWEDISH: (
        "tack för", "beställning", "ordernummer", "bekräftelse", "leverans",
        "totalt", "frakt",
    ),
    Language.DANISH: (
        "tak for", "bestilling", "ordrenummer", "bekræftelse", "levering",
        "total", "forsendelse",
    ),
}


def language_scores(text: str) -> dict[Language, int]:
    """Count how many indicators of each language occur in the text."""
    lower = (text or "").lower()
    return {
        lang: sum(1 for word in words if word in lower)
        for lang, words in LANGUAGE_INDICATORS.items()
    }


def detect_email_language(text: str) -> Language:
    """Return the language with the most indicator hits, or OTHER when none match."""
    scores = language_scores(text)
    best = max(scores.values())
    if best == 0:
        return Language.OTHER
    for lang, score in scores.items():
        if score == best:
            return lang
    return Language.OTHER
