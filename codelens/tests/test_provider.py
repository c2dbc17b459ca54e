"""Tests for the analysis provider: prompt plumbing, JSON repair, normalization."""

import pytest
from llama_index.core.base.llms.types import CompletionResponse

from conftest import run

from codelens.core.ast_parser.models import Symbol
from codelens.core.errors import ProviderError
from codelens.core.gateway import LLMGateway
from codelens.core.provider import (
    AnalysisProvider,
    normalize_explanations,
    parse_json_output,
)


# ── Fixtures ──────────────────────────────────────────────────────────────


class FakeLLM:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def acomplete(self, prompt, formatted=False, **kwargs):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return CompletionResponse(text=self.text)


class FakeEmbedding:
    def __init__(self, vector):
        self.vector = vector

    async def aget_text_embedding(self, text):
        return self.vector


class RateLimited(Exception):
    status_code = 429


def _symbol(name, kind="function"):
    return Symbol(
        name=name,
        kind=kind,
        line_start=1,
        line_end=2,
        code=f"def {name}():\n    pass",
        language="python",
    )


# ── Tests: JSON parsing ──────────────────────────────────────────────────


class TestParseJsonOutput:
    def test_fenced_json(self):
        raw = '```json\n[{"summary": "a"}]\n```'
        assert parse_json_output(raw) == [{"summary": "a"}]

    def test_prose_around_array(self):
        raw = 'Here you go:\n[{"summary": "a"}, {"summary": "b"}]\nHope that helps.'
        assert len(parse_json_output(raw)) == 2

    def test_object_mode(self):
        assert parse_json_output('Sure! {"summary": "x"}', "{", "}") == {"summary": "x"}

    def test_garbage_returns_none(self):
        assert parse_json_output("no json here") is None
        assert parse_json_output("") is None


class TestNormalizeExplanations:
    def test_short_response_is_padded_with_placeholders(self):
        results = normalize_explanations([{"summary": "first", "detailed": "d"}], 3)

        assert len(results) == 3
        assert results[0].summary == "first"
        assert not results[0].placeholder
        assert results[1].placeholder and results[1].summary == "Explanation 2 unavailable"
        assert results[2].placeholder and results[2].summary == "Explanation 3 unavailable"

    def test_long_response_is_truncated(self):
        items = [{"summary": str(i), "detailed": str(i)} for i in range(5)]
        assert [r.summary for r in normalize_explanations(items, 2)] == ["0", "1"]

    def test_non_list_response(self):
        results = normalize_explanations(None, 2)
        assert all(r.placeholder for r in results)
        assert len(results) == 2

    def test_wrapped_array(self):
        results = normalize_explanations({"explanations": [{"summary": "s"}]}, 1)
        assert results[0].summary == "s"
        assert results[0].detailed == "s"

    def test_non_object_items_become_placeholders(self):
        results = normalize_explanations(["just text", {"summary": "ok"}], 2)
        assert results[0].placeholder
        assert results[1].summary == "ok"

    @pytest.mark.parametrize("raw,expected", [
        (7, 7),
        (3.6, 3),
        ("8 (moderate)", 8),
        ("high", None),
        (True, None),
        (None, None),
    ])
    def test_complexity_coercion(self, raw, expected):
        item = {"summary": "s", "detailed": "d", "complexity": raw}
        assert normalize_explanations([item], 1)[0].complexity == expected


# ── Tests: Provider calls ────────────────────────────────────────────────


class TestAnalysisProvider:
    def test_explain_symbols_always_returns_one_per_symbol(self):
        llm = FakeLLM('[{"summary": "only one", "detailed": "d", "complexity": 2}]')
        provider = AnalysisProvider(llm=llm)

        results = run(provider.explain_symbols([_symbol("a"), _symbol("b"), _symbol("c")]))

        assert len(results) == 3
        assert results[0].complexity == 2
        assert results[2].placeholder
        assert '"a"' in llm.prompts[0] and '"c"' in llm.prompts[0]

    def test_explain_empty_batch_makes_no_call(self):
        llm = FakeLLM("[]")
        assert run(AnalysisProvider(llm=llm).explain_symbols([])) == []
        assert llm.prompts == []

    def test_summary_input_is_truncated(self):
        llm = FakeLLM("A short summary.")
        provider = AnalysisProvider(llm=llm, summary_max_chars=10)

        summary = run(provider.summarize("a.py", "x" * 10 + "TAILMARKER", "python"))

        assert summary == "A short summary."
        assert "TAILMARKER" not in llm.prompts[0]

    def test_empty_summary_is_an_error(self):
        with pytest.raises(ProviderError):
            run(AnalysisProvider(llm=FakeLLM("   ")).summarize("a.py", "x"))

    def test_llm_failure_is_wrapped_with_status(self):
        provider = AnalysisProvider(llm=FakeLLM(error=RateLimited("slow down")))
        with pytest.raises(ProviderError) as exc_info:
            run(provider.explain_symbols([_symbol("a")]))
        assert exc_info.value.status == 429
        assert "[429]" in str(exc_info.value)

    def test_embed(self):
        provider = AnalysisProvider(embed_model=FakeEmbedding([1, 2, 3]))
        assert run(provider.embed("text")) == [1.0, 2.0, 3.0]

    def test_empty_embedding_is_an_error(self):
        provider = AnalysisProvider(embed_model=FakeEmbedding([]))
        with pytest.raises(ProviderError):
            run(provider.embed("text"))

    def test_synthesize_prompt_carries_question_and_files(self):
        llm = FakeLLM("## Overview\nIt logs users in.")
        provider = AnalysisProvider(llm=llm)
        files = [{"filePath": "src/auth.py", "language": "python", "content": "def login(): ..."}]

        answer = run(provider.synthesize("How does login work?", files, target_file_path="src/auth.py"))

        assert answer.startswith("## Overview")
        prompt = llm.prompts[0]
        assert "How does login work?" in prompt
        assert "### src/auth.py" in prompt
        assert "Focus on `src/auth.py`" in prompt

    def test_empty_synthesis_is_an_error(self):
        with pytest.raises(ProviderError):
            run(AnalysisProvider(llm=FakeLLM("")).synthesize("q", []))


class TestGateway:
    def test_calls_are_counted_by_purpose(self):
        gateway = LLMGateway(FakeLLM('[{"summary": "s", "detailed": "d"}]'))
        provider = AnalysisProvider(llm=gateway)

        run(provider.explain_symbols([_symbol("a")]))
        run(provider.explain_symbols([_symbol("b")]))

        usage = provider.usage()
        assert usage["calls"] == 2
        assert usage["failures"] == 0
        assert list(usage["byPurpose"]) == ["explain_symbols"]
        explain = usage["byPurpose"]["explain_symbols"]
        assert explain["calls"] == 2
        assert explain["responseChars"] == 2 * len('[{"summary": "s", "detailed": "d"}]')
        assert explain["promptChars"] > 0

    def test_failures_are_counted_and_reraised(self):
        gateway = LLMGateway(FakeLLM(error=RuntimeError("down")))
        provider = AnalysisProvider(llm=gateway)

        with pytest.raises(ProviderError):
            run(provider.summarize("a.py", "x"))

        usage = gateway.usage()
        assert usage["failures"] == 1
        assert usage["byPurpose"]["index_summary"]["failures"] == 1
        assert usage["byPurpose"]["index_summary"]["responseChars"] == 0

    def test_untagged_calls(self):
        gateway = LLMGateway(FakeLLM("hello"))
        run(gateway.acomplete("ping"))
        assert gateway.usage()["byPurpose"]["general"]["calls"] == 1

    def test_no_usage_without_gateway(self):
        assert AnalysisProvider(llm=FakeLLM("x")).usage() is None
