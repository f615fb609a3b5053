"""
Offline translator used when no vendor translation service is configured.

Detects the source language from the Unicode script of the text and
replaces phrases from a small glossary. Text without a glossary match is
returned unchanged.
"""

import re

from impact_intake.processing.collaborators import TranslationResult

# Unicode blocks of the field languages
SCRIPT_PATTERNS = {
    "ne": re.compile(r"[ऀ-ॿ]"),  # Devanagari
    "km": re.compile(r"[ក-៿]"),  # Khmer
}

GLOSSARY: dict[tuple[str, str], dict[str, str]] = {
    ("en", "ne"): {
        "hello": "नमस्ते",
        "thank you": "धन्यवाद",
        "emergency": "आपातकाल",
        "help": "मद्दत",
        "urgent": "जरुरी",
        "new survivor": "नयाँ बाँचेका",
        "crisis alert": "संकट चेतावनी",
    },
    ("en", "km"): {
        "hello": "ជំរាបសួរ",
        "thank you": "អរគុណ",
        "emergency": "អាសន្ន",
        "help": "ជំនួយ",
        "urgent": "បន្ទាន់",
        "new survivor": "អ្នករស់រានមាណជីវិតថ្មី",
        "crisis alert": "ការជូនដំណឹងវិបត្តិ",
    },
    ("ne", "en"): {
        "नमस्ते": "hello",
        "धन्यवाद": "thank you",
        "आपातकाल": "emergency",
        "मद्दत": "help",
        "जरुरी": "urgent",
    },
    ("km", "en"): {
        "ជំរាបសួរ": "hello",
        "អរគុណ": "thank you",
        "អាសន្ន": "emergency",
        "ជំនួយ": "help",
        "បន្ទាន់": "urgent",
    },
}

SAME_LANGUAGE_CONFIDENCE = 0.95
GLOSSARY_CONFIDENCE = 0.85


def detect_language(text: str) -> str:
    """
    Guess the language of text from its script.

    Examples:
        >>> detect_language("मद्दत चाहियो")
        'ne'
        >>> detect_language("Need help")
        'en'
    """
    for language, pattern in SCRIPT_PATTERNS.items():
        if pattern.search(text):
            return language
    return "en"


class ScriptDetectingTranslator:
    """Glossary translator satisfying the Translator protocol."""

    def translate(
        self, text: str, target_language: str, source_language: str | None = None
    ) -> TranslationResult:
        source = source_language or detect_language(text)
        if source == target_language:
            return TranslationResult(
                translated_text=text,
                source_language=source,
                confidence=SAME_LANGUAGE_CONFIDENCE,
            )

        translated = text
        for phrase, replacement in GLOSSARY.get((source, target_language), {}).items():
            translated = re.sub(re.escape(phrase), replacement, translated, flags=re.IGNORECASE)

        return TranslationResult(
            translated_text=translated,
            source_language=source,
            confidence=GLOSSARY_CONFIDENCE,
        )
