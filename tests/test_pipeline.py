"""
Escalation controller and the public analysis operations.
"""

import pytest

from finova.vision.errors import ChartNotFoundError, InferenceError, InvalidImageError, RenderError
from finova.vision.pipeline import MAX_MISSING_CRITICAL, AttemptState, ChartAnalyzer, next_state
from finova.vision.prompt import PromptVariant, build_prompt
from finova.vision.schema import DateRange


def _answer_missing(n: int) -> str:
    """Labelled text answer with exactly ``n`` of the eight critical fields left out."""
    lines = [
        ("Current Status", "Flat"),
        ("Short Explanation", "Range bound."),
        ("Trend Analysis", "Sideways."),
        ("Support and Resistance", "10 and 12."),
        ("Technical Indicators", "RSI 50."),
        ("Patterns", "Rectangle."),
        ("Risk Assessment", "Low."),
        ("Current Technical Position", "Neutral."),
    ]
    kept = lines[n:]
    summary = [f"{k}: {v}" for k, v in kept if k in ("Current Status", "Short Explanation")]
    detailed = [f"{k}: {v}" for k, v in kept if k not in ("Current Status", "Short Explanation")]
    return "\n".join(summary) + "\n\n" + "\n".join(detailed) + "\n"


class TestStateMachine:
    def test_transitions(self):
        assert MAX_MISSING_CRITICAL == 3
        assert next_state(AttemptState.DETAILED, 4) == AttemptState.SIMPLE
        assert next_state(AttemptState.DETAILED, 3) == AttemptState.DONE
        assert next_state(AttemptState.DETAILED, 0) == AttemptState.DONE
        # the simple attempt never escalates again
        assert next_state(AttemptState.SIMPLE, 8) == AttemptState.DONE


class TestEscalation:
    @pytest.mark.asyncio
    async def test_four_missing_triggers_one_retry(self, settings, png_bytes, fake_client_factory, memory_store):
        client = fake_client_factory(_answer_missing(4), _answer_missing(0))
        analyzer = ChartAnalyzer(settings, client=client, store=memory_store)

        record = await analyzer.analyze_chart_bytes(png_bytes)

        assert len(client.prompts) == 2
        assert client.prompts[0] == build_prompt(PromptVariant.DETAILED, DateRange.ONE_MONTH)
        assert client.prompts[1] == build_prompt(PromptVariant.SIMPLE, DateRange.ONE_MONTH)
        assert record.summary.current_status == "Flat"

    @pytest.mark.asyncio
    async def test_three_missing_does_not_retry(self, settings, png_bytes, fake_client_factory, memory_store):
        client = fake_client_factory(_answer_missing(3))
        analyzer = ChartAnalyzer(settings, client=client, store=memory_store)

        record = await analyzer.analyze_chart_bytes(png_bytes)

        assert len(client.prompts) == 1
        assert record.summary.current_status == "Current status not available"
        assert record.detailed_analysis.technical_indicators == "RSI 50."

    @pytest.mark.asyncio
    async def test_at_most_two_calls(self, settings, png_bytes, fake_client_factory, memory_store):
        client = fake_client_factory("I cannot analyze this image.")
        analyzer = ChartAnalyzer(settings, client=client, store=memory_store)

        record = await analyzer.analyze_chart_bytes(png_bytes)

        assert len(client.prompts) == 2
        assert record.summary.recommendation == "HOLD"
        assert record.summary.confidence == 50

    @pytest.mark.asyncio
    async def test_second_attempt_replaces_first(self, settings, png_bytes, fake_client_factory, memory_store):
        first = "Current Status: From the first attempt\n\nTrend Analysis: Up.\n"
        second = "Recommendation: SELL\n\nPatterns: Head and shoulders.\n"
        client = fake_client_factory(first, second)
        analyzer = ChartAnalyzer(settings, client=client, store=memory_store)

        record = await analyzer.analyze_chart_bytes(png_bytes)

        # no merging: the first attempt's fields are gone
        assert record.summary.current_status == "Current status not available"
        assert record.detailed_analysis.trend_analysis == "Trend analysis not available"
        assert record.detailed_analysis.patterns == "Head and shoulders."

    @pytest.mark.asyncio
    async def test_inference_error_is_fatal(self, settings, png_bytes, fake_client_factory, memory_store):
        client = fake_client_factory(InferenceError("boom"))
        analyzer = ChartAnalyzer(settings, client=client, store=memory_store)

        with pytest.raises(InferenceError):
            await analyzer.analyze_chart_bytes(png_bytes)
        assert len(client.prompts) == 1

    @pytest.mark.asyncio
    async def test_inference_error_on_retry_is_fatal(self, settings, png_bytes, fake_client_factory, memory_store):
        client = fake_client_factory("nothing useful", InferenceError("down", timeout=True))
        analyzer = ChartAnalyzer(settings, client=client, store=memory_store)

        with pytest.raises(InferenceError) as exc:
            await analyzer.analyze_chart_bytes(png_bytes)
        assert exc.value.timeout is True

    @pytest.mark.asyncio
    async def test_unreadable_image(self, settings, fake_client_factory, memory_store):
        client = fake_client_factory("unused")
        analyzer = ChartAnalyzer(settings, client=client, store=memory_store)

        with pytest.raises(InvalidImageError):
            await analyzer.analyze_chart_bytes(b"definitely not a png")
        assert client.prompts == []


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_metadata_comes_from_the_request(
        self, settings, png_bytes, full_text_answer, fake_client_factory, memory_store
    ):
        answer = full_text_answer + "\nModel: gpt-something\nDate Range: ONE_DAY\n"
        client = fake_client_factory(answer)
        analyzer = ChartAnalyzer(settings, client=client, store=memory_store)
        ref = memory_store.put(png_bytes, name="AAPL")

        record = await analyzer.analyze_chart_image(ref, DateRange.SIX_MONTHS)

        assert len(client.prompts) == 1
        assert "the last 6 months" in client.prompts[0]
        wire = record.to_wire()
        assert wire["metadata"]["dateRange"] == "SIX_MONTHS"
        assert wire["metadata"]["model"] == "gemini-test-model"
        assert wire["summary"]["recommendation"] == "BUY"
        assert wire["detailedAnalysis"]["gapAnalysis"]["gaps"][0]["type"] == "UP"

    @pytest.mark.asyncio
    async def test_structured_answer(self, settings, png_bytes, json_answer_text, fake_client_factory, memory_store):
        client = fake_client_factory(f"```json\n{json_answer_text}\n```")
        analyzer = ChartAnalyzer(settings, client=client, store=memory_store)

        record = await analyzer.analyze_chart_bytes(png_bytes, DateRange.ONE_YEAR)

        assert record.summary.recommendation == "SELL"
        assert record.summary.price_targets.stop_loss_price == 436.25
        assert len(record.detailed_analysis.gap_analysis.gaps) == 2
        assert record.metadata.date_range == DateRange.ONE_YEAR

    @pytest.mark.asyncio
    async def test_missing_image_ref(self, settings, fake_client_factory, memory_store):
        analyzer = ChartAnalyzer(settings, client=fake_client_factory("x"), store=memory_store)
        with pytest.raises(ChartNotFoundError):
            await analyzer.analyze_chart_image("/snapshots/nope.png")


class FakeRenderer:
    def __init__(self, store, png, fail=None):
        self.store, self.png, self.fail = store, png, fail
        self.calls = []

    async def render(self, symbol, date_range):
        self.calls.append((symbol, date_range))
        if self.fail:
            raise self.fail
        return self.store.put(self.png, name=symbol)


class TestCaptureAndAnalyze:
    @pytest.mark.asyncio
    async def test_artifact_deleted_after_success(
        self, settings, png_bytes, full_text_answer, fake_client_factory, memory_store
    ):
        renderer = FakeRenderer(memory_store, png_bytes)
        analyzer = ChartAnalyzer(
            settings, client=fake_client_factory(full_text_answer), store=memory_store, renderer=renderer
        )

        record = await analyzer.capture_and_analyze("AAPL", DateRange.FIVE_DAYS)

        assert renderer.calls == [("AAPL", DateRange.FIVE_DAYS)]
        assert memory_store.items == {}
        assert len(memory_store.deleted) == 1
        assert record.metadata.date_range == DateRange.FIVE_DAYS

    @pytest.mark.asyncio
    async def test_artifact_deleted_after_inference_failure(
        self, settings, png_bytes, fake_client_factory, memory_store
    ):
        renderer = FakeRenderer(memory_store, png_bytes)
        analyzer = ChartAnalyzer(
            settings, client=fake_client_factory(InferenceError("bad shape")), store=memory_store, renderer=renderer
        )

        with pytest.raises(InferenceError):
            await analyzer.capture_and_analyze("MSFT")
        assert memory_store.items == {}
        assert len(memory_store.deleted) == 1

    @pytest.mark.asyncio
    async def test_render_error_propagates(self, settings, png_bytes, fake_client_factory, memory_store):
        client = fake_client_factory("unused")
        renderer = FakeRenderer(memory_store, png_bytes, fail=RenderError("timeout"))
        analyzer = ChartAnalyzer(settings, client=client, store=memory_store, renderer=renderer)

        with pytest.raises(RenderError):
            await analyzer.capture_and_analyze("TSLA")
        assert client.prompts == []

    @pytest.mark.asyncio
    async def test_failed_cleanup_keeps_result(
        self, settings, png_bytes, full_text_answer, fake_client_factory, memory_store
    ):
        def broken_delete(ref):
            raise OSError("read-only filesystem")

        memory_store.delete = broken_delete
        analyzer = ChartAnalyzer(
            settings,
            client=fake_client_factory(full_text_answer),
            store=memory_store,
            renderer=FakeRenderer(memory_store, png_bytes),
        )

        record = await analyzer.capture_and_analyze("AAPL")
        assert record.summary.recommendation == "BUY"
