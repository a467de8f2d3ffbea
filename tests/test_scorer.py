"""Unit tests for question scoring."""

import pytest

from vpat_scorer.aggregator import aggregate_results
from vpat_scorer.config import ScoringConfig
from vpat_scorer.errors import ConfigError
from vpat_scorer.models import CriterionVerdict, QuestionScore, Row
from vpat_scorer.scorer import QuestionScorer, load_carry_forward, normalize_text, scoring_summary, texts_match
from vpat_scorer.template_reader import TemplateReader
from vpat_scorer.template_writer import update_table


def _verdict(criterion, status, violations=0, resources=(), total=1, issues=()):
    return CriterionVerdict(
        criterion=criterion,
        status=status,
        total_violations=violations,
        resources_with_violations=len(resources),
        total_resources=total,
        top_issues=tuple(issues),
        affected_resources=tuple(resources),
    )


def _question(text, weight=3, score="", comment="", row_index=2):
    return Row(row_index=row_index, type="question", cells=[text], question_text=text,
               weight=weight, score=score, comment=comment)


class TestTextsMatch:
    def test_normalize(self):
        assert normalize_text("  Images   need alt-text! ") == "images need alttext"

    @pytest.mark.parametrize("a,b", [
        ("Do all images have alternative text?", "Do all images have alternative text?"),
        ("Images need alt-text!", "Images need alt text"),
        ("Do all imges have alternative text", "Do all images have alternative text?"),
        ("DO ALL IMAGES HAVE ALTERNATIVE TEXT", "do all images have alternative text"),
    ])
    def test_matching_texts(self, a, b):
        assert texts_match(a, b)

    @pytest.mark.parametrize("a,b", [
        ("Do all images have alternative text?", "Is the page language declared?"),
        ("Are captions provided for video?", "Do all images have alternative text?"),
        ("a b c", "a b c d"),
        ("", "Anything at all"),
    ])
    def test_non_matching_texts(self, a, b):
        assert not texts_match(a, b)

    def test_threshold_is_configurable(self):
        strict = ScoringConfig(fuzzy_threshold=0.99)
        assert texts_match("Do all imges have alternative text", "Do all images have alternative text?")
        assert not texts_match("Do all imges have altrnative text", "Do all images have alternative text?", strict)


class TestAutomatedScoring:
    @pytest.fixture
    def scorer(self, question_mapping):
        return QuestionScorer(question_mapping)

    def test_failure_scores_zero_with_violation_comment(self, scorer):
        verdicts = {"1.1.1": _verdict("1.1.1", "fail", 3, resources=("a", "b"), total=4,
                                      issues=("Missing alt", "Input image alt"))}
        score = scorer.score_row(1, _question("Do all images have alternative text?"), "1.1", verdicts)

        assert score.automatable
        assert (score.score, score.weighted_score) == (0, 0)
        assert score.comment == "Found 3 violation(s) across 2 page(s). Issues: Missing alt; Input image alt"

    def test_pages_are_counted_once_across_criteria(self, scorer):
        verdicts = {
            "1.1.1": _verdict("1.1.1", "fail", 1, resources=("a",), issues=("x",)),
            "1.1.2": _verdict("1.1.2", "fail", 2, resources=("a", "b"), issues=("y", "x")),
        }
        score = scorer.score_row(1, _question("Do all images have alternative text?"), "1.1", verdicts)
        assert score.comment == "Found 3 violation(s) across 2 page(s). Issues: x; y"

    def test_pass_scores_weight(self, scorer):
        verdicts = {"1.1.1": _verdict("1.1.1", "pass", total=5)}
        score = scorer.score_row(1, _question("Do all images have alternative text?", weight=3), "1.1", verdicts)
        assert (score.score, score.weighted_score) == (1, 3)
        assert score.comment == "No issues found across 5 page(s)."

    def test_incomplete_needs_review(self, scorer):
        verdicts = {
            "1.1.1": _verdict("1.1.1", "pass"),
            "1.1.2": _verdict("1.1.2", "incomplete"),
        }
        score = scorer.score_row(1, _question("Do all images have alternative text?"), "1.1", verdicts)
        assert score.score is None and score.weighted_score is None
        assert score.comment.startswith("Requires manual review")

    def test_no_coverage(self, scorer):
        verdicts = {"2.1.1": _verdict("2.1.1", "fail", 1, resources=("a",))}
        score = scorer.score_row(1, _question("Do all images have alternative text?"), "1.1", verdicts)
        assert score.score is None
        assert score.comment == "No automated test coverage for this criterion."

    def test_prefix_does_not_match_longer_section(self, scorer):
        # 1.1 must not pick up 1.10.x or 1.11.x criteria
        verdicts = {"1.11.1": _verdict("1.11.1", "fail", 1, resources=("a",))}
        score = scorer.score_row(1, _question("Do all images have alternative text?"), "1.1", verdicts)
        assert score.score is None

    def test_automated_result_overrides_template_score(self, scorer):
        row = _question("Do all images have alternative text?", score="1", comment="old")
        verdicts = {"1.1.1": _verdict("1.1.1", "fail", 1, resources=("a",), issues=("Missing alt",))}
        assert scorer.score_row(1, row, "1.1", verdicts).score == 0


class TestManualScoring:
    @pytest.fixture
    def scorer(self, question_mapping):
        return QuestionScorer(question_mapping)

    def test_existing_score_is_preserved(self, scorer):
        row = _question("Are decorative images hidden from assistive technology?", weight=2, score="1", comment="Checked by hand")
        score = scorer.score_row(1, row, "1.1", {"1.1.1": _verdict("1.1.1", "fail", 1, resources=("a",))})
        assert not score.automatable
        assert (score.score, score.weighted_score, score.comment) == (1, 2, "Checked by hand")

    def test_existing_zero_is_preserved(self, scorer):
        row = _question("Unknown question", weight=2, score="0")
        assert scorer.score_row(1, row, "9.9", {}).score == 0

    def test_carry_forward_never_overrides_existing_score(self, scorer):
        row = _question("Are decorative images hidden from assistive technology?", score="1", comment="kept", row_index=3)
        prior = {(1, 3): QuestionScore(1, 3, "q", 0, 3, 0, "prior", False)}
        assert scorer.score_row(1, row, "1.1", {}, prior).score == 1

    def test_carry_forward_fills_unscored_row(self, scorer):
        row = _question("Unmapped question", weight=2, score="*", row_index=4)
        prior = {(1, 4): QuestionScore(1, 4, "q", 1, 2, 2, "Reviewed last quarter", False)}
        score = scorer.score_row(1, row, "1.1", {}, prior)
        assert (score.score, score.weighted_score, score.comment) == (1, 2, "Reviewed last quarter")

    def test_default_manual_comment(self, scorer):
        score = scorer.score_row(1, _question("Unmapped question", score="*"), "7.7", {})
        assert score.score is None
        assert score.comment == "Manual review required."

    def test_existing_comment_kept_when_unscored(self, scorer):
        score = scorer.score_row(1, _question("Unmapped question", comment="In progress"), "7.7", {})
        assert score.comment == "In progress"


class TestScoreProduct:
    def test_every_question_is_scored_once(self, single_product_xml, question_mapping, make_scan_result):
        product = TemplateReader().parse_markup(single_product_xml).products[0]
        verdicts = aggregate_results([
            make_scan_result("https://example.com/", violations=[("image-alt", ["wcag2a", "wcag111"], "Images must have alt text")],
                             passes=[("html-has-lang", ["wcag311"], "")]),
        ])
        scores = QuestionScorer(question_mapping).score_product(product, verdicts)

        assert len({s.key for s in scores}) == len(scores) == 5
        by_text = {s.question_text: s for s in scores}

        images = by_text["Do all images have alternative text?"]
        assert (images.score, images.weighted_score) == (0, 0)
        assert images.comment.startswith("Found 1 violation(s) across 1 page(s).")

        assert by_text["Are decorative images hidden from assistive technology?"].score == 1
        assert by_text["Can every control be reached by keyboard?"].score is None
        assert by_text["Is the page language declared?"].score == 1
        assert by_text["Are names and roles exposed to assistive technology?"].comment == "Manual review required."

        for s in scores:
            assert s.weighted_score == (None if s.score is None else s.weight * s.score)

    def test_subtotal_counts_scored_weights(self, single_product_xml, question_mapping, make_scan_result):
        parsed = TemplateReader().parse_markup(single_product_xml)
        product = parsed.products[0]
        verdicts = aggregate_results([
            make_scan_result("https://example.com/", violations=[("image-alt", ["wcag111"], "Images must have alt text")]),
        ])
        scores = QuestionScorer(question_mapping).score_product(product, verdicts)
        # weight 3 scored 0, weight 2 kept at 1
        assert update_table(parsed.table_nodes[1], scores, 1) == (2, 5)

    def test_summary(self):
        scores = [
            QuestionScore(1, 2, "a", 1, 3, 3, "", True),
            QuestionScore(1, 3, "b", 0, 2, 0, "", True),
            QuestionScore(2, 2, "c", None, 1, None, "", False),
        ]
        summary = scoring_summary(scores)
        assert (summary.total, summary.automated, summary.manual) == (3, 2, 1)
        assert (summary.passing, summary.failing, summary.not_applicable) == (1, 1, 1)


class TestLoadCarryForward:
    def test_list_of_records(self, write_json):
        path = write_json("prior.json", [
            {"tableIndex": 1, "rowIndex": 3, "questionText": "q", "score": 1, "weight": 2, "comment": "ok"},
        ])
        loaded = load_carry_forward(str(path))
        assert loaded[(1, 3)].weighted_score == 2

    def test_keyed_object(self, write_json):
        path = write_json("prior.json", {"2:4": {"score": None, "weight": 1, "comment": "n/a"}})
        loaded = load_carry_forward(str(path))
        assert loaded[(2, 4)].score is None
        assert loaded[(2, 4)].weighted_score is None

    def test_bad_input(self, write_json, tmp_path):
        with pytest.raises(ConfigError):
            load_carry_forward(str(tmp_path / "missing.json"))
        with pytest.raises(ConfigError):
            load_carry_forward(str(write_json("bad.json", "just a string")))
        with pytest.raises(ConfigError):
            load_carry_forward(str(write_json("bad2.json", [{"rowIndex": 1}])))

    def test_keyed_value_must_be_an_object(self, write_json):
        with pytest.raises(ConfigError, match="'1:2' must be an object"):
            load_carry_forward(str(write_json("prior.json", {"1:2": 1})))
