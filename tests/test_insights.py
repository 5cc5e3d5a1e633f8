"""Tests for the iterative enrichment loop."""

import logging

import pytest

from chains.insights import MAX_ITERATIONS, ArticleInsightsChain, is_incomplete
from models.analysis import MinimumScoreRule, TagSet

from conftest import FakeAnalysisProvider, FakeImageAnalyzer, FakeScorer, ScriptedTagger, unscored


def build_chain(provider, executor, articles, tags=()) -> ArticleInsightsChain:
    return ArticleInsightsChain(
        provider=provider,
        task_id="task-1",
        executor=executor,
        articles=articles,
        existing_tags=tags,
    )


def fully_tagged(article_id, **fields):
    return unscored(article_id, tag1="a", tag2="b", tag3="c", **fields)


class TestGenerateInsights:
    @pytest.mark.asyncio
    async def test_complete_batch_converges_in_one_pass(self, executor):
        tagger = ScriptedTagger()
        images = FakeImageAnalyzer()
        scorer = FakeScorer(score=6)
        articles = [fully_tagged(1), fully_tagged(2)]
        provider = FakeAnalysisProvider(articles, tagger=tagger, image_analyzer=images, scorer=scorer)

        result = await build_chain(provider, executor, articles).generate_insights()

        assert result.converged is True
        assert result.iterations == 1
        assert [a.importance_score for a in result.articles] == [6, 6]
        assert tagger.calls == []
        assert images.calls == []
        assert len(scorer.calls) == 2

    @pytest.mark.asyncio
    async def test_converged_articles_get_no_extra_model_calls(self, executor):
        # Article 1 is complete after pass 1, article 2 needs a second pass
        tagger = ScriptedTagger({2: [RuntimeError("rate limited"), TagSet(tag1="x", tag2="y", tag3="z")]})
        scorer = FakeScorer(score=5)
        articles = [unscored(1), unscored(2)]
        provider = FakeAnalysisProvider(articles, tagger=tagger, scorer=scorer)

        result = await build_chain(provider, executor, articles).generate_insights()

        assert result.iterations == 2
        assert result.converged is True
        assert [call[0] for call in tagger.calls] == [1, 2, 2]
        # Pass 1 scores both; pass 2 rescores only the article whose tags changed
        assert [call[0] for call in scorer.calls] == [1, 2, 2]

    @pytest.mark.asyncio
    async def test_missing_tag_recovers_on_second_pass(self, executor):
        tagger = ScriptedTagger({"a1": [RuntimeError("timeout"), TagSet(tag1="Dam", tag2="Flood", tag3="Budget")]})
        article = unscored("a1", tag1="Dam", tag2="Flood", tag3=None)
        provider = FakeAnalysisProvider([article], tagger=tagger)

        result = await build_chain(provider, executor, [article]).generate_insights()

        assert result.iterations == 2
        assert result.converged is True
        [enriched] = result.articles
        assert (enriched.tag1, enriched.tag2, enriched.tag3) == ("Dam", "Flood", "Budget")
        assert enriched.importance_score is not None

    @pytest.mark.asyncio
    async def test_stops_after_max_iterations_with_fallback_score(self, executor, caplog):
        tagger = ScriptedTagger({1: [RuntimeError("down")] * 10})
        scorer = FakeScorer(error=RuntimeError("down"))
        article = unscored(1)
        provider = FakeAnalysisProvider([article], tagger=tagger, scorer=scorer)

        with caplog.at_level(logging.DEBUG):
            result = await build_chain(provider, executor, [article]).generate_insights()

        assert result.iterations == MAX_ITERATIONS
        assert result.converged is False
        assert result.articles[0].importance_score == 1
        assert len(tagger.calls) == MAX_ITERATIONS
        # Score stays at the fallback; unchanged articles are not rescored
        assert len(scorer.calls) == 1
        warnings = [r for r in caplog.records if getattr(r, "event", None) == "insights.warning.max_iterations_reached"]
        assert len(warnings) == 1

    @pytest.mark.asyncio
    async def test_new_tags_extend_vocabulary(self, executor):
        tagger = ScriptedTagger({
            1: [TagSet(tag1="Dam", tag2="Flood", tag3="Budget")],
            2: [TagSet(tag1="Dam", tag2="Drought", tag3="Policy")],
        })
        articles = [unscored(1), unscored(2)]
        provider = FakeAnalysisProvider(articles, tagger=tagger)

        await build_chain(provider, executor, articles, tags=["Policy"]).generate_insights()

        assert tagger.calls[0][1] == ["Policy"]
        assert tagger.calls[1][1] == ["Policy", "Dam", "Flood", "Budget"]

    @pytest.mark.asyncio
    async def test_image_context_only_for_articles_with_images(self, executor):
        images = FakeImageAnalyzer(result="Chart of reservoir levels")
        articles = [
            fully_tagged(1, has_attached_image=True),
            fully_tagged(2, has_attached_image=False),
            fully_tagged(3, has_attached_image=True, image_context="Already described"),
        ]
        provider = FakeAnalysisProvider(articles, image_analyzer=images)

        result = await build_chain(provider, executor, articles).generate_insights()

        assert images.calls == [1]
        by_id = {a.id: a for a in result.articles}
        assert by_id[1].image_context == "Chart of reservoir levels"
        assert by_id[2].image_context is None
        assert by_id[3].image_context == "Already described"

    @pytest.mark.asyncio
    async def test_image_failure_is_soft(self, executor):
        images = FakeImageAnalyzer(error=RuntimeError("unsupported image"))
        article = fully_tagged(1, has_attached_image=True)
        provider = FakeAnalysisProvider([article], image_analyzer=images)

        result = await build_chain(provider, executor, [article]).generate_insights()

        assert result.converged is True
        assert result.articles[0].image_context is None

    @pytest.mark.asyncio
    async def test_score_floor_comes_from_matching_rule(self, executor):
        scorer = FakeScorer(score=2)
        articles = [
            fully_tagged(1, target_url="https://a.example/list"),
            fully_tagged(2, target_url="https://b.example/list"),
        ]
        rules = [MinimumScoreRule(target_url="https://b.example/list", min_score=4)]
        provider = FakeAnalysisProvider(articles, scorer=scorer, rules=rules)

        result = await build_chain(provider, executor, articles).generate_insights()

        assert sorted(scorer.calls) == [(1, 1), (2, 4)]
        # The floor shapes the request only; the answer is kept as returned
        assert {a.id: a.importance_score for a in result.articles} == {1: 2, 2: 2}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_score", [None, 7.5])
    async def test_invalid_score_falls_back(self, executor, caplog, bad_score):
        articles = [fully_tagged(1), fully_tagged(2)]
        provider = FakeAnalysisProvider(articles, scorer=FakeScorer(score=bad_score))

        with caplog.at_level(logging.DEBUG):
            result = await build_chain(provider, executor, articles).generate_insights()

        assert result.converged is True
        assert [a.importance_score for a in result.articles] == [1, 1]
        errors = [r for r in caplog.records if getattr(r, "event", None) == "insights.importance.determine.error"]
        assert [r.data["id"] for r in errors] == [1, 2]


def test_is_incomplete():
    assert is_incomplete(unscored(1)) is True
    assert is_incomplete(fully_tagged(1)) is True  # no score yet
