"""
Tests for BatchPipeline and ParallelBatchPipeline.

Sequential runs share one context; parallel runs get isolated deep copies
that are merged back after every run settles.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any

import pytest

from spindle.orchestration import (
    BatchPipeline,
    ConstructionError,
    ContextIsolationError,
    Handler,
    MisuseError,
    ParallelBatchPipeline,
    Pipeline,
)
from spindle.orchestration.testing import RecordingHandler


class AddParam(Handler[tuple, int]):
    """count += a"""

    def prepare_inputs(self, context):
        return context["count"], context["a"]

    def handle_request(self, inputs):
        count, a = inputs
        return count + a

    def process_results(self, context, inputs, outputs):
        context["count"] = outputs
        return "default"


class ProcessItem(Handler[str, str]):
    """Appends ``processed-<item>`` to ``results`` and records ``last``."""

    def __init__(self, delays=None, fail=(), **kwargs):
        super().__init__(**kwargs)
        self.delays = delays or {}
        self.fail = set(fail)
        self.in_flight = 0
        self.peak = 0
        self.context_ids: list[int] = []

    def prepare_inputs(self, context):
        return context["item"]

    async def handle_request(self, item):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(item, 0))
            if item in self.fail:
                raise ValueError(f"cannot process {item}")
            return f"processed-{item}"
        finally:
            self.in_flight -= 1

    def process_results(self, context, item, output):
        self.context_ids.append(id(context))
        context.setdefault("results", []).append(output)
        context["last"] = item
        return "default"


class PerParam(BatchPipeline):
    def prepare_batch_params(self, context):
        return context["param_sets"]

    def process_batch_results(self, context, inputs, outputs):
        context["runs"] = len(inputs)
        return "batch-done"


class ParallelPerParam(ParallelBatchPipeline):
    def prepare_batch_params(self, context):
        return [{"item": item} for item in context["items"]]

    def process_batch_results(self, context, inputs, outputs):
        context["runs"] = len(inputs)
        return "batch-done"


# ---------------------------------------------------------------------------
# BatchPipeline
# ---------------------------------------------------------------------------


class TestSequentialBatch:
    @pytest.mark.asyncio
    async def test_runs_accumulate_on_shared_context(self):
        batch = PerParam(Pipeline(AddParam()))
        ctx: dict[str, Any] = {"count": 0, "param_sets": [{"a": 1}, {"a": 2}]}

        action = await batch.run(ctx)

        assert action == "batch-done"
        assert ctx["count"] == 3
        assert ctx["a"] == 2
        assert ctx["runs"] == 2

    @pytest.mark.asyncio
    async def test_runs_in_order(self):
        handler = ProcessItem()
        batch = PerParam(Pipeline(handler))
        ctx: dict[str, Any] = {"param_sets": [{"item": "x"}, {"item": "y"}, {"item": "z"}]}

        await batch.run(ctx)

        assert ctx["results"] == ["processed-x", "processed-y", "processed-z"]
        assert handler.peak == 1
        assert set(handler.context_ids) == {id(ctx)}

    @pytest.mark.asyncio
    async def test_empty_param_sets(self):
        handler = RecordingHandler()
        ctx: dict[str, Any] = {"param_sets": []}

        assert await PerParam(Pipeline(handler)).run(ctx) == "batch-done"
        assert ctx["runs"] == 0
        assert handler.calls == []

    @pytest.mark.asyncio
    async def test_failure_stops_the_batch(self, mock_logger, events):
        handler = ProcessItem(fail={"bad"})
        batch = PerParam(Pipeline(handler), logger=mock_logger)
        ctx: dict[str, Any] = {
            "param_sets": [{"item": "a"}, {"item": "bad"}, {"item": "c"}],
        }

        with pytest.raises(ValueError, match="cannot process bad"):
            await batch.run(ctx)

        assert ctx["results"] == ["processed-a"]
        assert "runs" not in ctx
        assert events(mock_logger.warning) == ["batch_pipeline.run_failed"]
        assert mock_logger.warning.call_args.kwargs["index"] == 1

    @pytest.mark.asyncio
    async def test_parameter_precedence(self):
        class ReadParams(RecordingHandler):
            def prepare_inputs(self, context):
                return (context["mode"], context["a"], context["b"])

        handler = ReadParams()
        template = Pipeline(handler)
        template.set_params({"mode": "template", "a": 0, "b": 0})
        batch = PerParam(template)
        batch.set_params({"mode": "batch", "b": 1})

        await batch.run({"param_sets": [{"mode": "run"}]})

        assert handler.seen_inputs == [("run", 0, 1)]

    @pytest.mark.asyncio
    async def test_walks_the_whole_template_graph(self):
        first = ProcessItem()
        second = RecordingHandler(read="last")
        first.connect_to(second)
        ctx: dict[str, Any] = {"param_sets": [{"item": "p"}, {"item": "q"}]}

        await PerParam(Pipeline(first)).run(ctx)

        assert second.seen_inputs == ["p", "q"]

    @pytest.mark.asyncio
    async def test_routes_from_outer_pipeline(self):
        batch = PerParam(Pipeline(AddParam()))
        after = RecordingHandler(key="after", output=True)
        batch.on("batch-done", after)
        ctx: dict[str, Any] = {"count": 10, "param_sets": [{"a": 5}]}

        await Pipeline(batch).run(ctx)

        assert ctx["count"] == 15
        assert ctx["after"] is True


class TestBatchPipelineConstruction:
    def test_template_required(self):
        with pytest.raises(ConstructionError, match="Template pipeline is required"):
            PerParam(None)

    def test_template_must_be_a_pipeline(self):
        with pytest.raises(ConstructionError):
            PerParam(RecordingHandler())

    def test_direct_handle_request_is_misuse(self):
        with pytest.raises(MisuseError):
            PerParam(Pipeline(RecordingHandler())).handle_request([])

    def test_create_pipeline_instance(self):
        start = RecordingHandler()
        template = Pipeline(start)
        template.set_params({"a": 1})
        batch = PerParam(template)

        first = batch.create_pipeline_instance({"b": 2})
        second = batch.create_pipeline_instance({"b": 3})

        assert first is not second
        assert first.start_handler is start is second.start_handler
        assert first.params == {"a": 1, "b": 2}
        assert second.params == {"a": 1, "b": 3}
        assert template.params == {"a": 1}
        assert batch.template_pipeline is template


# ---------------------------------------------------------------------------
# ParallelBatchPipeline
# ---------------------------------------------------------------------------


class TestParallelBatch:
    @pytest.mark.asyncio
    async def test_concurrent_appends_are_all_kept(self):
        batch = ParallelPerParam(Pipeline(ProcessItem()))
        ctx: dict[str, Any] = {"items": ["item1", "item2"], "results": []}

        action = await batch.run(ctx)

        assert action == "batch-done"
        assert sorted(ctx["results"]) == ["processed-item1", "processed-item2"]
        assert ctx["runs"] == 2

    @pytest.mark.asyncio
    async def test_list_key_created_by_runs_last_completion_wins(self):
        batch = ParallelPerParam(Pipeline(ProcessItem(delays={"a": 0.03})))
        ctx: dict[str, Any] = {"items": ["a", "b", "c"]}

        await batch.run(ctx)

        assert ctx["results"] == ["processed-a"]

    @pytest.mark.asyncio
    async def test_list_valued_params_match_sequential_batch(self):
        class Hold(Handler[float, None]):
            def prepare_inputs(self, context):
                return context.get("delay", 0)

            async def handle_request(self, delay):
                await asyncio.sleep(delay)

        class ParallelFromParamSets(ParallelBatchPipeline):
            def prepare_batch_params(self, context):
                return context["param_sets"]

        param_sets = [{"tags": ["a"]}, {"tags": ["b"], "delay": 0.02}]
        sequential: dict[str, Any] = {"param_sets": param_sets}
        parallel: dict[str, Any] = {"param_sets": param_sets}

        await PerParam(Pipeline(Hold())).run(sequential)
        await ParallelFromParamSets(Pipeline(Hold())).run(parallel)

        assert sequential["tags"] == ["b"]
        assert parallel["tags"] == ["b"]

    @pytest.mark.asyncio
    async def test_assigned_lists_are_not_concatenated(self):
        class WritePair(Handler[int, list]):
            def prepare_inputs(self, context):
                return context["n"]

            async def handle_request(self, n):
                await asyncio.sleep(0.01 * n)
                return [n, n * 10]

            def process_results(self, context, n, pair):
                context["pair"] = pair
                return "default"

        class ParallelFromParamSets(ParallelBatchPipeline):
            def prepare_batch_params(self, context):
                return [{"n": n} for n in context["ns"]]

        ctx: dict[str, Any] = {"ns": [1, 2]}
        await ParallelFromParamSets(Pipeline(WritePair())).run(ctx)

        assert ctx["pair"] == [2, 20]

    @pytest.mark.asyncio
    async def test_runs_overlap(self):
        handler = ProcessItem()
        await ParallelPerParam(Pipeline(handler)).run({"items": ["a", "b", "c"]})
        assert handler.peak == 3

    @pytest.mark.asyncio
    async def test_each_run_gets_its_own_copy(self):
        handler = ProcessItem()
        ctx: dict[str, Any] = {"items": ["a", "b"], "results": []}

        await ParallelPerParam(Pipeline(handler)).run(ctx)

        assert len(set(handler.context_ids)) == 2
        assert id(ctx) not in handler.context_ids

    @pytest.mark.asyncio
    async def test_scalars_merge_in_completion_order(self):
        handler = ProcessItem(delays={"slow": 0.03, "fast": 0.0})
        ctx: dict[str, Any] = {"items": ["slow", "fast"], "results": []}

        await ParallelPerParam(Pipeline(handler)).run(ctx)

        assert ctx["last"] == "slow"
        assert ctx["results"] == ["processed-fast", "processed-slow"]

    @pytest.mark.asyncio
    async def test_untouched_keys_survive(self):
        ctx: dict[str, Any] = {"items": ["a"], "config": {"depth": 2}}
        await ParallelPerParam(Pipeline(ProcessItem())).run(ctx)
        assert ctx["config"] == {"depth": 2}

    @pytest.mark.asyncio
    async def test_failure_raised_after_successes_merge(self, mock_logger, events):
        handler = ProcessItem(fail={"bad"}, delays={"ok": 0.01})
        batch = ParallelPerParam(Pipeline(handler), logger=mock_logger)
        ctx: dict[str, Any] = {"items": ["bad", "ok"], "results": []}

        with pytest.raises(ValueError, match="cannot process bad"):
            await batch.run(ctx)

        assert ctx["results"] == ["processed-ok"]
        assert "runs" not in ctx
        assert events(mock_logger.warning) == ["batch_pipeline.run_failed"]

    @pytest.mark.asyncio
    async def test_first_error_by_completion_is_raised(self):
        handler = ProcessItem(fail={"late", "early"}, delays={"late": 0.02})
        ctx: dict[str, Any] = {"items": ["late", "early"]}

        with pytest.raises(ValueError, match="cannot process early"):
            await ParallelPerParam(Pipeline(handler)).run(ctx)

    @pytest.mark.asyncio
    async def test_uncopyable_context_fails_before_any_run(self):
        handler = ProcessItem()
        ctx: dict[str, Any] = {"items": ["a"], "lock": threading.Lock()}

        with pytest.raises(ContextIsolationError) as exc_info:
            await ParallelPerParam(Pipeline(handler)).run(ctx)

        assert exc_info.value.key == "lock"
        assert handler.context_ids == []

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        ctx: dict[str, Any] = {"items": []}
        assert await ParallelPerParam(Pipeline(ProcessItem())).run(ctx) == "batch-done"
        assert ctx == {"items": [], "runs": 0}

    @pytest.mark.asyncio
    async def test_custom_merge_hook(self):
        class KeepFirst(ParallelPerParam):
            def merge_isolated_results(self, context, baseline, isolated):
                context.setdefault("merged", []).append(isolated["last"])

        handler = ProcessItem(delays={"a": 0.02})
        ctx: dict[str, Any] = {"items": ["a", "b"]}

        await KeepFirst(Pipeline(handler)).run(ctx)

        assert ctx["merged"] == ["b", "a"]
        assert "results" not in ctx

    @pytest.mark.asyncio
    async def test_parameter_sets_stay_isolated(self):
        ctx: dict[str, Any] = {"items": ["a", "b"], "seen": []}

        class Record(Handler[str, str]):
            def prepare_inputs(self, context):
                return context["item"]

            async def handle_request(self, item):
                await asyncio.sleep(0)
                return item

            def process_results(self, context, item, output):
                context["seen"].append(output)
                return "default"

        await ParallelPerParam(Pipeline(Record())).run(ctx)

        assert sorted(ctx["seen"]) == ["a", "b"]
