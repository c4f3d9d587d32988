"""
Unit tests for the content safety filter.

Covers whole-word matching, nested structures, sentence redaction and the
split between strict and sensitive terms.
"""

import pytest

from lumina_gateway.core.safety import SENSITIVE_TERMS, STRICT_TERMS, SafetyFilter


class TestLexicon:
    """Test the two keyword tiers."""

    def test_default_lists_are_disjoint(self):
        """Strict and sensitive lists must never overlap."""
        assert not STRICT_TERMS & SENSITIVE_TERMS

    def test_overlapping_lists_rejected(self):
        """Constructing a filter with overlapping lists fails loudly."""
        with pytest.raises(ValueError, match="overlap"):
            SafetyFilter(strict_terms={"war", "porn"}, sensitive_terms={"war"})

    def test_extra_terms_cannot_shadow_sensitive_terms(self):
        """Configured extra strict terms may not block sensitive words."""
        with pytest.raises(ValueError, match="overlap"):
            SafetyFilter(extra_strict_terms=["Death"])

    def test_extra_terms_are_enforced(self):
        """Configured extra strict terms block like built-in ones."""
        safety = SafetyFilter(extra_strict_terms=["gambling"])
        assert not safety.is_safe("A story about Gambling halls.")


class TestIsSafe:
    """Test recursive validation."""

    def setup_method(self):
        self.safety = SafetyFilter()

    def test_clean_text_is_safe(self):
        assert self.safety.is_safe("Marie Curie discovered radium and polonium.")

    def test_strict_term_is_case_insensitive(self):
        assert not self.safety.is_safe("They found COCAINE in the lab.")

    def test_whole_word_only(self):
        """Substrings of longer words do not match."""
        assert self.safety.is_safe("The drugstore sold shampoo in Sussex.")
        assert self.safety.is_safe("Essex and Middlesex are counties.")

    def test_sensitive_terms_do_not_block(self):
        """Death, war, weapons and crime belong in history writing."""
        text = "The king died in battle after the war; his sword was a famous weapon."
        assert self.safety.is_safe(text)
        assert self.safety.sanitize(text) == text

    def test_nested_structures(self):
        """Violations anywhere in lists or dict values are found."""
        clean = {"title": "Light", "sections": [{"body": "Prisms split light."}], "year": 1666}
        dirty = {"title": "Light", "sections": [{"body": "Prisms split light."}, {"body": ["ok", "porn"]}]}
        assert self.safety.is_safe(clean)
        assert not self.safety.is_safe(dirty)

    def test_non_text_scalars_are_safe(self):
        assert self.safety.is_safe(None)
        assert self.safety.is_safe(42)
        assert self.safety.is_safe([True, 1.5])

    def test_dict_keys_are_not_checked(self):
        """Only values are content; keys are schema."""
        assert self.safety.is_safe({"drugs": "Penicillin saved many lives."})


class TestSanitize:
    """Test sentence-level redaction."""

    def setup_method(self):
        self.safety = SafetyFilter()

    def test_clean_text_unchanged(self):
        """Sanitize is the identity on clean input, whitespace included."""
        text = "  Newton watched an apple fall. Was it gravity? Yes!  "
        assert self.safety.sanitize(text) == text

    def test_drops_only_violating_sentences(self):
        text = "Paracelsus studied medicine. He mixed alcohol into tinctures. His ideas changed chemistry."
        assert self.safety.sanitize(text) == "Paracelsus studied medicine. His ideas changed chemistry."

    def test_unterminated_tail_is_its_own_sentence(self):
        text = "The voyage began in spring. Sailors carried tobacco"
        assert self.safety.sanitize(text) == "The voyage began in spring."

    def test_first_sentence_removed(self):
        text = "Heroin was once sold as medicine! Doctors later learned better."
        assert self.safety.sanitize(text) == "Doctors later learned better."

    def test_everything_removed(self):
        assert self.safety.sanitize("Torture. Gore!") == ""

    def test_result_is_always_safe(self):
        texts = [
            "A. B porn. C!",
            "nude? nude! fine.",
            "Ends with cigarette",
            "Mixed: fine sentence. sex ed? war stories.",
        ]
        for text in texts:
            assert self.safety.is_safe(self.safety.sanitize(text))

    def test_keeps_sensitive_sentences(self):
        text = "Soldiers died in the war. They were brave."
        assert self.safety.sanitize(text) == text


class TestRedact:
    """Test structured redaction."""

    def setup_method(self):
        self.safety = SafetyFilter()

    def test_redacts_free_text_fields(self):
        entry = {
            "title": "Chemistry",
            "humanStory": "She refined the ore. She never touched alcohol. She won a prize.",
            "sources": ["Britannica"],
        }
        redacted = self.safety.redact(entry)
        assert redacted["humanStory"] == "She refined the ore. She won a prize."
        assert redacted["sources"] == ["Britannica"]
        assert entry["humanStory"].count(".") == 3  # input untouched

    def test_protected_keys_are_left_alone(self):
        item = {"name": "Drug Discovery", "description": "Finding drugs. Helping people."}
        redacted = self.safety.redact(item, frozenset({"name"}))
        assert redacted["name"] == "Drug Discovery"
        assert redacted["description"] == "Helping people."
        assert not self.safety.is_safe(redacted)
