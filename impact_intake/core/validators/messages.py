"""
Localized validation messages.

Lookup falls back to English when the locale or the key is missing, and to
the code itself when English has no entry either.
"""

DEFAULT_LOCALE = "en"

VALIDATION_MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "required_field": "This field is required",
        "invalid_date": "Please enter a valid date",
        "future_date": "Date cannot be in the future",
        "invalid_number": "Please enter a valid number",
        "survivor_count_mismatch": "New survivors + existing survivors must equal total survivors",
        "large_survivor_count": "Large number of new survivors detected - please verify",
        "date_sequence_error": "End date must be after start date",
        "character_limit_exceeded": "Text exceeds maximum character limit",
        "approaching_character_limit": "Approaching character limit ({length}/{limit})",
        "suspicious_data": "Data appears suspicious, please review",
        "insufficient_detail": "Crisis reports should contain more detail",
        "potential_duplicate": "Similar submission may already exist",
        "duplicate_submission": "Similar submission already exists",
        "validation_rule_error": "Validation rule {rule} encountered an error",
    },
    "ne": {
        "required_field": "यो फिल्ड आवश्यक छ",
        "invalid_date": "कृपया मान्य मिति प्रविष्ट गर्नुहोस्",
        "future_date": "मिति भविष्यमा हुन सक्दैन",
        "invalid_number": "कृपया मान्य संख्या प्रविष्ट गर्नुहोस्",
        "survivor_count_mismatch": "नयाँ बाँचेका + अवस्थित बाँचेका = कुल बाँचेका हुनुपर्छ",
        "date_sequence_error": "अन्त्य मिति सुरु मिति पछि हुनुपर्छ",
        "character_limit_exceeded": "पाठले अधिकतम वर्ण सीमा नाघेको छ",
        "suspicious_data": "डाटा संदिग्ध देखिन्छ, कृपया समीक्षा गर्नुहोस्",
        "duplicate_submission": "समान पेशकश पहिले नै अवस्थित छ",
    },
    "km": {
        "required_field": "វាលនេះត្រូវបានទាមទារ",
        "invalid_date": "សូមបញ្ចូលកាលបរិច្ឆេទដែលត្រឹមត្រូវ",
        "future_date": "កាលបរិច្ឆេទមិនអាចនៅអនាគតបានទេ",
        "invalid_number": "សូមបញ្ចូលលេខដែលត្រឹមត្រូវ",
        "survivor_count_mismatch": "អ្នករស់រានមាណជីវិតថ្មី + អ្នករស់រានមាណជីវិតដែលមានស្រាប់ ត្រូវតែស្មើនឹងអ្នករស់រានមាណជីវិតសរុប",
        "date_sequence_error": "កាលបរិច្ឆេទបញ្ចប់ត្រូវតែនៅក្រោយកាលបរិច្ឆេទចាប់ផ្តើម",
        "character_limit_exceeded": "អត្ថបទលើសពីដែនកំណត់តួអក្សរអតិបរមា",
        "suspicious_data": "ទិន្នន័យហាក់បីដូចជាគួរឱ្យសង្ស័យ សូមពិនិត្យឡើងវិញ",
        "duplicate_submission": "ការដាក់ស្នើស្រដៀងគ្នាមានរួចហើយ",
    },
}


def supported_locales() -> list[str]:
    return sorted(VALIDATION_MESSAGES)


def get_message(code: str, locale: str | None = None, **params) -> str:
    """
    Get the message for an error code in the given locale.

    Args:
        code: Error or warning code
        locale: Locale identifier ("en", "ne", "km"); None means English
        **params: Values substituted into the message template

    Returns:
        The rendered message

    Examples:
        >>> get_message("future_date", "fr")
        'Date cannot be in the future'
        >>> get_message("unknown_code")
        'unknown_code'
    """
    messages = VALIDATION_MESSAGES.get(locale or DEFAULT_LOCALE, VALIDATION_MESSAGES[DEFAULT_LOCALE])
    template = messages.get(code) or VALIDATION_MESSAGES[DEFAULT_LOCALE].get(code, code)
    if params:
        try:
            return template.format(**params)
        except (KeyError, IndexError):
            return template
    return template
