"""
Unit tests for crisis keyword detection and the offline translator.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from impact_intake.processing.config import DEFAULT_CRISIS_KEYWORDS
from impact_intake.processing.crisis import CrisisDetector
from impact_intake.processing.translation import ScriptDetectingTranslator, detect_language


class TestCrisisDetector:
    """Tests for CrisisDetector"""

    @pytest.mark.parametrize("content", [
        "URGENT: family needs shelter",
        "There was an Attack near the school",
        "signs of abuse reported",
        "Please HELP",
    ])
    def test_detects_keywords_case_insensitive(self, content):
        assert CrisisDetector().is_crisis(content)

    def test_no_keywords(self):
        assert CrisisDetector().matches("Weekly art class went well") == []

    def test_empty_content(self):
        assert CrisisDetector().matches(None) == []
        assert CrisisDetector().matches("") == []

    def test_matches_in_keyword_order(self):
        assert CrisisDetector().matches("violence and an emergency") == ["emergency", "violence"]

    def test_substring_match(self):
        """Test keywords match inside longer words"""
        assert CrisisDetector().matches("She was helpful") == ["help"]

    def test_custom_keywords(self):
        detector = CrisisDetector(["Flood"])
        assert detector.is_crisis("FLOODING in the valley")
        assert not detector.is_crisis("urgent")

    def test_requires_keywords(self):
        with pytest.raises(ValueError):
            CrisisDetector([])

    @given(st.sampled_from(DEFAULT_CRISIS_KEYWORDS), st.text(max_size=20), st.text(max_size=20))
    def test_property_keyword_anywhere_detected(self, keyword, prefix, suffix):
        assert CrisisDetector().is_crisis(prefix + keyword.upper() + suffix)


class TestScriptDetectingTranslator:
    """Tests for the offline translator"""

    @pytest.mark.parametrize("text,language", [
        ("मद्दत चाहियो", "ne"),
        ("សូមជួយ", "km"),
        ("Need assistance", "en"),
        ("", "en"),
    ])
    def test_detect_language(self, text, language):
        assert detect_language(text) == language

    def test_same_language_passthrough(self):
        result = ScriptDetectingTranslator().translate("All children are safe", "en")

        assert result.translated_text == "All children are safe"
        assert result.source_language == "en"
        assert result.confidence == 0.95

    def test_nepali_glossary(self):
        result = ScriptDetectingTranslator().translate("मद्दत जरुरी", "en")

        assert result.translated_text == "help urgent"
        assert result.source_language == "ne"
        assert result.confidence == 0.85

    def test_english_to_khmer(self):
        result = ScriptDetectingTranslator().translate("Thank you", "km")
        assert result.translated_text == "អរគុណ"

    def test_explicit_source_language(self):
        result = ScriptDetectingTranslator().translate("hello", "ne", source_language="en")
        assert result.translated_text == "नमस्ते"
