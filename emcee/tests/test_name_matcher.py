"""
Tests for NameMatcher

Exact, phonetic and fuzzy tiers, plus the question/request heuristic.
"""

import pytest


class TestVariations:
    """Tests for name variation generation"""

    def test_full_name_variations(self):
        from emcee.listener.name_matcher import generate_name_variations

        assert generate_name_variations("Steve Jobs") == ["steve jobs", "steve", "jobs", "steve j"]

    def test_short_words_are_skipped(self):
        from emcee.listener.name_matcher import generate_name_variations

        assert generate_name_variations("Al Gore") == ["al gore", "gore"]

    def test_empty_name(self):
        from emcee.listener.name_matcher import generate_name_variations

        assert generate_name_variations("   ") == []

    def test_phonetic_variants_include_mishearings(self):
        from emcee.listener.name_matcher import generate_phonetic_variants

        variants = generate_phonetic_variants("steve")
        assert variants[0] == "steve"
        assert "stebe" in variants
        assert "steev" in variants

    def test_explicit_variations_are_normalized(self):
        from emcee.listener.name_matcher import NameMatcher

        matcher = NameMatcher()
        matcher.initialize("Steve", ["Stevie ", "", "S.J."])
        assert matcher.variations == ["stevie", "s.j."]


class TestEditDistance:
    def test_levenshtein(self):
        from emcee.listener.name_matcher import levenshtein_distance

        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_similarity(self):
        from emcee.listener.name_matcher import similarity

        assert similarity("", "") == 1.0
        assert similarity("jordon", "jordan") == pytest.approx(5 / 6)


class TestDetectMention:
    """Tests for NameMatcher.detect_mention"""

    @pytest.fixture
    def steve(self):
        from emcee.listener.name_matcher import NameMatcher

        matcher = NameMatcher()
        matcher.initialize("Steve Jobs")
        return matcher

    @pytest.fixture
    def jordan(self):
        from emcee.listener.name_matcher import NameMatcher

        matcher = NameMatcher()
        matcher.initialize("Jordan")
        return matcher

    def test_exact_match(self, steve):
        result = steve.detect_mention("Hey Steve, what's next?")

        assert result.is_mentioned is True
        assert result.matched_variation == "steve"
        assert result.confidence == 1.0
        assert result.fuzzy_match is False

    def test_full_name_wins_over_first_name(self, steve):
        result = steve.detect_mention("thanks steve jobs")
        assert result.matched_variation == "steve jobs"

    def test_phonetic_match(self, steve):
        result = steve.detect_mention("hey steev can you help")

        assert result.is_mentioned is True
        assert result.matched_variation == "steve"
        assert result.confidence == 0.9
        assert result.fuzzy_match is True

    def test_fuzzy_match_reports_similarity(self, jordan):
        result = jordan.detect_mention("hey jordon can you check")

        assert result.is_mentioned is True
        assert result.fuzzy_match is True
        assert result.confidence == pytest.approx(5 / 6)

    def test_below_threshold_is_not_a_mention(self, jordan):
        result = jordan.detect_mention("pass the jargon")

        assert result.is_mentioned is False
        assert result.matched_variation is None
        assert result.confidence == 0.0

    def test_threshold_can_be_raised(self, jordan):
        jordan.fuzzy_match_threshold = 0.9
        assert jordan.detect_mention("hey jordon").is_mentioned is False

    def test_empty_text(self, steve):
        assert steve.detect_mention("").is_mentioned is False

    def test_uninitialized_matcher(self):
        from emcee.listener.name_matcher import NameMatcher

        assert NameMatcher().detect_mention("steve").is_mentioned is False

    def test_explain_match(self, steve):
        exact = steve.detect_mention("steve?")
        assert "exact" in steve.explain_match(exact)

        phonetic = steve.detect_mention("steev?")
        assert "phonetic" in steve.explain_match(phonetic)

        assert "No mention" in steve.explain_match(steve.detect_mention("lunch"))


class TestQuestionOrRequest:
    @pytest.mark.parametrize("text", [
        "what's on the agenda",
        "Is the build green",
        "anything else?",
        "please send the notes",
        "could you summarize",
        "I need the numbers",
    ])
    def test_detects_questions_and_requests(self, text):
        from emcee.listener.name_matcher import contains_question_or_request

        assert contains_question_or_request(text) is True

    @pytest.mark.parametrize("text", [
        "whatever works for me",
        "island hopping sounds fun",
        "hello everyone",
        "Hey Steve",
    ])
    def test_ignores_statements(self, text):
        from emcee.listener.name_matcher import contains_question_or_request

        assert contains_question_or_request(text) is False
