from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, List, Sequence

import pytest

from pom_retrieval.cache import EmbeddingCache, EmbeddingCacheOptions
from pom_retrieval.hybrid import (
    CachedEmbedder,
    HybridSearchEngine,
    SearchOptions,
    SearchRequest,
    SearchScope,
    UtteranceType,
    iter_utterances,
)
from pom_retrieval.models import PageElement, PageObjectModel, PageStep, PageTask


class StaticEmbedder:
    def __init__(self, mapping: Dict[str, Sequence[float]], default: Sequence[float]):
        self.mapping = mapping
        self.default = default
        self.calls: List[str] = []

    async def embed(self, text: str) -> Sequence[float]:
        self.calls.append(text)
        return self.mapping.get(text, self.default)


class FailingEmbedder:
    def __init__(self, fail_on: str | None = None):
        self.fail_on = fail_on

    async def embed(self, text: str) -> Sequence[float]:
        if self.fail_on is None or text == self.fail_on:
            raise RuntimeError("embedding service unavailable")
        return [1.0, 0.0]


class StaticRepository:
    def __init__(self, models: List[PageObjectModel]):
        self.models = models

    async def get_all_models(self) -> List[PageObjectModel]:
        return list(self.models)


class BrokenRepository:
    async def get_all_models(self) -> List[PageObjectModel]:
        raise OSError("models directory unreadable")


def _login_model() -> PageObjectModel:
    return PageObjectModel(
        name="Login",
        url="https://app.test/login",
        description="Sign-in page",
        utterances=["sign in"],
        elements=[PageElement(name="Username field", css_path="#user", utterances=["enter username"])],
        tasks=[PageTask(name="Submit", description="Submit credentials", utterances=["log in now"])],
    )


LOGIN_VECTORS = {
    "login": [1.0, 0.2, 0.0],
    "sign in": [0.9, 0.1, 0.0],
    "enter username": [0.3, 1.0, 0.0],
    "log in now": [0.8, 0.3, 0.0],
}


async def _login_engine(**options) -> HybridSearchEngine:
    engine = HybridSearchEngine(
        StaticRepository([_login_model()]),
        StaticEmbedder(LOGIN_VECTORS, default=[0.0, 0.0, 1.0]),
        options=SearchOptions(**options),
    )
    await engine.initialize()
    return engine


def test_iter_utterances_orders_levels_and_skips_blanks():
    model = PageObjectModel(
        name="Checkout",
        url="https://shop.test/checkout",
        utterances=["checkout page", "  "],
        elements=[PageElement(name="Pay", utterances=["pay button"])],
        tasks=[
            PageTask(
                name="Purchase",
                utterances=["buy items"],
                steps=[PageStep(description="Click pay", utterances=["press pay", ""])],
            )
        ],
    )

    utterances = list(iter_utterances(model))

    assert [u.type for u in utterances] == [
        UtteranceType.PAGE,
        UtteranceType.ELEMENT,
        UtteranceType.TASK,
        UtteranceType.STEP,
    ]
    assert [u.id for u in utterances] == [
        "page|Checkout|checkout page",
        "element|Checkout|Pay|pay button",
        "task|Checkout|Purchase|buy items",
        "step|Checkout|Purchase|Click pay|press pay",
    ]
    step = utterances[-1]
    assert step.task_name == "Purchase"
    assert step.step_description == "Click pay"
    assert step.url == "https://shop.test/checkout"


@pytest.mark.asyncio
async def test_login_scenario_ranks_page_and_task_first():
    engine = await _login_engine()

    response = await engine.search("login", max_results=10, scope=SearchScope.ALL)

    assert response.ok
    assert response.total_matches == 3
    types = [result.type for result in response.results]
    assert set(types[:2]) == {UtteranceType.PAGE, UtteranceType.TASK}
    assert types[2] is UtteranceType.ELEMENT


@pytest.mark.asyncio
async def test_login_scenario_with_synonyms_uses_lexical_overlap():
    engine = await _login_engine(synonyms={"login": ["Sign", "LOG"]})

    response = await engine.search("login")

    assert response.total_matches == 2
    assert {r.type for r in response.results} == {UtteranceType.PAGE, UtteranceType.TASK}
    assert engine.expand_query_terms(["login"]) == ["login", "sign", "log"]


@pytest.mark.asyncio
async def test_scope_filter_returns_only_elements():
    engine = await _login_engine()

    response = await engine.search("login", scope=SearchScope.ELEMENTS)

    assert [r.context.element_name for r in response.results] == ["Username field"]
    assert all(r.type is UtteranceType.ELEMENT for r in response.results)


@pytest.mark.asyncio
async def test_result_carries_page_context_and_raw_cosine():
    engine = await _login_engine()

    response = await engine.search("login", scope=SearchScope.TASKS)

    (result,) = response.results
    assert result.id == "task|Login|Submit|log in now"
    assert result.name == "Login"
    assert result.description == "Sign-in page"
    assert result.url == "https://app.test/login"
    assert result.matched_utterance == "log in now"
    assert result.context.task_name == "Submit"
    assert 0.98 < result.similarity_score <= 1.0


@pytest.mark.asyncio
async def test_search_is_deterministic():
    engine = await _login_engine()

    first = await engine.search("login")
    second = await engine.search("login")

    assert [(r.id, r.similarity_score) for r in first.results] == [
        (r.id, r.similarity_score) for r in second.results
    ]


def _semantic_model() -> PageObjectModel:
    return PageObjectModel(
        name="Docs",
        url="https://app.test/docs",
        elements=[
            PageElement(name="Alpha", utterances=["alpha beta"]),
            PageElement(name="Gamma", utterances=["gamma delta"]),
        ],
    )


@pytest.mark.asyncio
async def test_zero_lexical_overlap_requires_similarity_threshold():
    embedder = StaticEmbedder(
        {"alpha beta": [1.0, 0.0], "gamma delta": [0.0, 1.0], "zeta": [0.9, 0.1]},
        default=[0.0, 0.0],
    )
    engine = HybridSearchEngine(StaticRepository([_semantic_model()]), embedder)
    await engine.initialize()

    permissive = await engine.search("zeta", min_similarity_threshold=0.5)
    strict = await engine.search("zeta", min_similarity_threshold=0.999)

    assert [r.matched_utterance for r in permissive.results] == ["alpha beta"]
    assert permissive.total_matches == 1
    assert strict.results == []
    assert strict.ok


@pytest.mark.asyncio
async def test_lexical_match_bypasses_similarity_threshold():
    embedder = StaticEmbedder(
        {"alpha beta": [1.0, 0.0], "gamma delta": [0.0, 1.0], "gamma": [1.0, 0.0]},
        default=[0.0, 0.0],
    )
    engine = HybridSearchEngine(StaticRepository([_semantic_model()]), embedder)
    await engine.initialize()

    response = await engine.search("gamma", min_similarity_threshold=0.9)

    assert [r.matched_utterance for r in response.results] == ["gamma delta"]
    assert response.results[0].similarity_score == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_candidate_cap_keeps_highest_term_frequency():
    model = PageObjectModel(
        name="Form",
        url="https://app.test/form",
        tasks=[
            PageTask(name="Repeat", utterances=["submit submit form"]),
            PageTask(name="Once", utterances=["submit"]),
        ],
    )
    embedder = StaticEmbedder(
        {"submit submit form": [1.0, 0.0], "submit": [0.0, 1.0]},
        default=[0.0, 0.0],
    )

    capped = HybridSearchEngine(
        StaticRepository([model]), embedder, options=SearchOptions(max_lexical_candidates=1)
    )
    await capped.initialize()
    uncapped = HybridSearchEngine(StaticRepository([model]), embedder)
    await uncapped.initialize()

    capped_response = await capped.search("submit")
    uncapped_response = await uncapped.search("submit")

    assert [r.context.task_name for r in capped_response.results] == ["Repeat"]
    assert capped_response.total_matches == 1
    assert uncapped_response.results[0].context.task_name == "Once"
    assert uncapped_response.total_matches == 2


@pytest.mark.asyncio
async def test_max_results_truncates_but_total_counts_all():
    engine = await _login_engine()

    response = await engine.search("login", max_results=1)

    assert len(response.results) == 1
    assert response.total_matches == 3


@pytest.mark.asyncio
async def test_type_boost_changes_ranking():
    engine = await _login_engine(element_boost=5.0)

    response = await engine.search("login")

    assert response.results[0].type is UtteranceType.ELEMENT


@pytest.mark.asyncio
async def test_blank_query_returns_error_response():
    engine = await _login_engine()

    response = await engine.search("   ")

    assert response.results == []
    assert response.total_matches == 0
    assert response.error_message == "Query cannot be empty"


@pytest.mark.asyncio
async def test_search_before_initialize_returns_empty():
    embedder = StaticEmbedder({}, default=[1.0])
    engine = HybridSearchEngine(StaticRepository([_login_model()]), embedder)

    response = await engine.search("login")

    assert not engine.is_initialized
    assert response.ok
    assert response.results == []
    assert response.total_matches == 0
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_provider_failure_during_search_becomes_error_response():
    engine = HybridSearchEngine(
        StaticRepository([_semantic_model()]), FailingEmbedder(fail_on="boom")
    )
    await engine.initialize()

    response = await engine.search("boom")

    assert response.results == []
    assert response.error_message == "embedding service unavailable"
    assert response.duration_ms >= 0


@pytest.mark.asyncio
async def test_provider_failure_during_initialize_propagates_and_keeps_old_index():
    embedder = StaticEmbedder({"alpha beta": [1.0, 0.0]}, default=[0.0, 1.0])
    engine = HybridSearchEngine(StaticRepository([_semantic_model()]), embedder)
    await engine.initialize()

    engine.embedder = FailingEmbedder()
    with pytest.raises(RuntimeError, match="unavailable"):
        await engine.initialize()

    assert engine.get_index_statistics().total_utterances == 2


@pytest.mark.asyncio
async def test_dimension_mismatch_fails_initialize():
    embedder = StaticEmbedder({"alpha beta": [1.0, 0.0, 0.0]}, default=[0.0, 1.0])
    engine = HybridSearchEngine(StaticRepository([_semantic_model()]), embedder)

    with pytest.raises(ValueError, match=r"expected 3, got 2"):
        await engine.initialize()


@pytest.mark.asyncio
async def test_reinitialize_replaces_documents():
    repository = StaticRepository([_login_model()])
    engine = HybridSearchEngine(repository, StaticEmbedder(LOGIN_VECTORS, default=[0.0, 0.0, 1.0]))
    await engine.initialize()
    await engine.initialize()

    stats = engine.get_index_statistics()
    assert stats.total_utterances == 3
    assert engine.lexical_index.postings("sign") == {"page|Login|sign in": 1}

    repository.models = []
    await engine.initialize()

    assert engine.get_index_statistics().total_utterances == 0
    assert engine.lexical_index.avg_doc_length == 1.0


@pytest.mark.asyncio
async def test_index_statistics_count_each_type():
    model = PageObjectModel(
        name="Checkout",
        url="https://shop.test/checkout",
        utterances=["checkout page", "checkout page"],
        elements=[PageElement(name="Pay", utterances=["pay button", "pay now"])],
        tasks=[
            PageTask(
                name="Purchase",
                utterances=["buy items"],
                steps=[PageStep(description="Click pay", utterances=["press pay"])],
            )
        ],
    )
    engine = HybridSearchEngine(StaticRepository([model]), StaticEmbedder({}, default=[1.0, 0.0]))

    stats = await engine.initialize()

    assert stats.total_utterances == 5
    assert stats.page_utterances == 1
    assert stats.element_utterances == 2
    assert stats.task_utterances == 1
    assert stats.step_utterances == 1


@pytest.mark.asyncio
async def test_cancel_event_aborts_search_without_results():
    engine = await _login_engine()
    cancel = asyncio.Event()
    cancel.set()

    response = await engine.search("login", cancel_event=cancel)

    assert response.results == []
    assert response.total_matches == 0
    assert response.error_message.startswith("Search cancelled")


@pytest.mark.asyncio
async def test_timeout_aborts_slow_search():
    class SlowEmbedder(StaticEmbedder):
        async def embed(self, text: str) -> Sequence[float]:
            if text == "slow":
                await asyncio.sleep(5)
            return await super().embed(text)

    engine = HybridSearchEngine(
        StaticRepository([_semantic_model()]), SlowEmbedder({}, default=[1.0, 0.0])
    )
    await engine.initialize()

    response = await engine.search(SearchRequest(query="slow", timeout=0.05))

    assert response.results == []
    assert response.error_message.startswith("Search cancelled")


@pytest.mark.asyncio
async def test_find_model_by_url_uses_repository_models():
    models = [
        PageObjectModel(name="Exact", url="https://app.test/exact"),
        PageObjectModel(name="Wildcard", url="https://app.test/items/*/edit"),
        PageObjectModel(name="Prefix", url="https://app.test/"),
    ]
    engine = HybridSearchEngine(StaticRepository(models), StaticEmbedder({}, default=[1.0]))

    assert (await engine.find_model_by_url("https://APP.test/exact")).name == "Exact"
    assert (await engine.find_model_by_url("https://app.test/items/42/edit")).name == "Wildcard"
    assert (await engine.find_model_by_url("https://app.test/other")).name == "Prefix"
    assert await engine.find_model_by_url("https://elsewhere.test") is None
    assert await engine.find_model_by_url("") is None


@pytest.mark.asyncio
async def test_find_model_by_url_swallows_repository_errors():
    engine = HybridSearchEngine(BrokenRepository(), StaticEmbedder({}, default=[1.0]))

    assert await engine.find_model_by_url("https://app.test") is None


@pytest.mark.asyncio
async def test_cached_embedder_reuses_vectors_across_rebuilds(tmp_path: Path):
    inner = StaticEmbedder(LOGIN_VECTORS, default=[0.0, 0.0, 1.0])
    cache = EmbeddingCache(EmbeddingCacheOptions(cache_directory=tmp_path / "cache"))
    engine = HybridSearchEngine(StaticRepository([_login_model()]), CachedEmbedder(inner, cache))

    await engine.initialize()
    await engine.initialize()
    await engine.search("login")
    await engine.search("login")

    assert sorted(inner.calls) == sorted(["sign in", "enter username", "log in now", "login"])


@pytest.mark.asyncio
async def test_cached_embedder_rejects_blank_text_and_propagates_provider_errors(tmp_path: Path):
    cache = EmbeddingCache(EmbeddingCacheOptions(cache_directory=tmp_path / "cache"))
    embedder = CachedEmbedder(FailingEmbedder(), cache)

    with pytest.raises(ValueError):
        await embedder.embed(" ")
    with pytest.raises(RuntimeError):
        await embedder.embed("anything")

    assert embedder.get_cache_statistics().total_files == 0


@pytest.mark.asyncio
async def test_delimiters_in_names_and_utterances_do_not_collide():
    models = [
        PageObjectModel(name="A|B", url="https://app.test/ab", utterances=["c"]),
        PageObjectModel(name="A", url="https://app.test/a", utterances=["B|c"]),
        PageObjectModel(name="A\\", url="https://app.test/a-slash", utterances=["|B|c"]),
    ]
    engine = HybridSearchEngine(StaticRepository(models), StaticEmbedder({}, default=[1.0, 0.0]))

    stats = await engine.initialize()

    assert stats.total_utterances == 3
    ids = [u.id for model in models for u in iter_utterances(model)]
    assert ids == ["page|A\\|B|c", "page|A|B\\|c", "page|A\\\\|\\|B\\|c"]


@pytest.mark.asyncio
async def test_provider_timeout_is_an_error_not_a_cancellation():
    class TimingOutEmbedder(StaticEmbedder):
        async def embed(self, text: str) -> Sequence[float]:
            if text == "slow provider":
                raise TimeoutError("provider socket timed out")
            return await super().embed(text)

    engine = HybridSearchEngine(
        StaticRepository([_semantic_model()]), TimingOutEmbedder({}, default=[1.0, 0.0])
    )
    await engine.initialize()

    without_deadline = await engine.search("slow provider")
    with_deadline = await engine.search("slow provider", timeout=30)

    for response in (without_deadline, with_deadline):
        assert response.results == []
        assert not response.error_message.startswith("Search cancelled")
        assert "provider socket timed out" in response.error_message


@pytest.mark.asyncio
async def test_search_during_rebuild_sees_complete_previous_index():
    class GatedEmbedder(StaticEmbedder):
        def __init__(self, mapping, default, block_on: str):
            super().__init__(mapping, default)
            self.block_on = block_on
            self.blocked = asyncio.Event()
            self.release = asyncio.Event()

        async def embed(self, text: str) -> Sequence[float]:
            if text == self.block_on:
                self.blocked.set()
                await self.release.wait()
            return await super().embed(text)

    repository = StaticRepository([_semantic_model()])
    engine = HybridSearchEngine(repository, StaticEmbedder({}, default=[1.0, 0.0]))
    await engine.initialize()

    repository.models = [
        PageObjectModel(
            name="Replacement",
            url="https://app.test/new",
            utterances=["alpha first", "alpha second"],
        )
    ]
    gated = GatedEmbedder({}, default=[1.0, 0.0], block_on="alpha second")
    engine.embedder = gated
    rebuild = asyncio.create_task(engine.initialize())
    await asyncio.wait_for(gated.blocked.wait(), timeout=5)

    during = await engine.search("alpha")

    assert during.ok
    assert [r.name for r in during.results] == ["Docs"]
    assert engine.get_index_statistics().total_utterances == 2

    gated.release.set()
    await rebuild
    after = await engine.search("alpha")

    assert {r.matched_utterance for r in after.results} == {"alpha first", "alpha second"}
    assert engine.get_index_statistics().total_utterances == 2


@pytest.mark.asyncio
async def test_query_with_lone_surrogate_still_reaches_provider(tmp_path: Path):
    inner = StaticEmbedder({}, default=[1.0, 0.0])
    cache = EmbeddingCache(EmbeddingCacheOptions(cache_directory=tmp_path / "cache"))
    engine = HybridSearchEngine(StaticRepository([_semantic_model()]), CachedEmbedder(inner, cache))
    await engine.initialize()

    response = await engine.search("bad \ud800 text")

    assert response.ok
    assert "bad \ud800 text" in inner.calls
