"""
Tests for XRayTracer and the step decorators

Run with: pytest tests/
"""

import asyncio

import pytest

from xray_sdk import (
    ExportHook,
    InMemoryStore,
    SQLStore,
    ValidationError,
    XRayConfig,
    XRaySession,
    XRayTracer,
    with_xray_step,
    xray_step,
)


def run(coro):
    return asyncio.run(coro)


def test_tracer_defaults_to_memory_store():
    tracer = XRayTracer()
    assert isinstance(tracer.store, InMemoryStore)
    assert tracer.enabled


def test_sessions_share_the_tracer_store():
    store = InMemoryStore()
    tracer = XRayTracer(store=store)

    async def pipeline():
        for name in ["first", "second"]:
            session = tracer.session(name)
            await session.step("s", lambda s: None)
            await session.complete()

    run(pipeline())
    assert sorted(e.name for e in run(store.list_executions())) == ["first", "second"]
    assert run(store.count_executions()) == 2


def test_session_receives_tracer_hooks():
    seen = []

    class Hook:
        def after_step_persisted(self, step):
            seen.append(step.name)

    tracer = XRayTracer(step_hooks=[Hook()])
    session = tracer.session("pipeline", tags=["t"], notes="n")

    assert isinstance(session, XRaySession)
    run(session.step("s1", lambda s: None))
    assert seen == ["s1"]
    assert session.get_execution().tags == ["t"]


def test_start_execution_completes_session():
    store = InMemoryStore()
    tracer = XRayTracer(store=store)

    async def pipeline():
        async with tracer.start_execution("competitor_selection", execution_id="run-1") as session:
            await session.step("keyword_generation", lambda s: s.output({"keywords": ["stand"]}))
        return session

    session = run(pipeline())
    stored = run(store.get_execution("run-1"))
    assert session.is_completed
    assert stored.is_completed
    assert stored.steps[0].output == {"keywords": ["stand"]}


def test_start_execution_completes_on_error():
    store = InMemoryStore()
    tracer = XRayTracer(store=store)

    async def pipeline():
        async with tracer.start_execution("pipeline", execution_id="run-err") as session:
            await session.step("s1", lambda s: None)
            raise RuntimeError("downstream failure")

    with pytest.raises(RuntimeError, match="downstream failure"):
        run(pipeline())
    assert run(store.get_execution("run-err")).is_completed


def test_disabled_tracer_runs_callbacks_without_recording():
    store = InMemoryStore()
    tracer = XRayTracer(store=store, enabled=False)
    calls = []

    async def pipeline():
        async with tracer.start_execution("pipeline") as session:
            await session.step("s1", lambda s: calls.append(s.name))
            await session.batch_steps([("s2", lambda s: calls.append(s.name))])
        return session

    session = run(pipeline())
    assert calls == ["s1", "s2"]
    assert session.get_id().startswith("exec_")
    assert session.get_execution().steps == []
    assert run(store.list_executions()) == []


def test_disabled_tracer_still_validates_names():
    tracer = XRayTracer(enabled=False)
    with pytest.raises(ValidationError):
        tracer.session("")


def test_from_config_builds_store_and_export_hook(tmp_path):
    config = XRayConfig(store="memory", collector_url="http://collector:8000")
    tracer = XRayTracer.from_config(config)

    assert isinstance(tracer.store, InMemoryStore)
    exporters = [h for h in tracer.execution_hooks if isinstance(h, ExportHook)]
    assert len(exporters) == 1
    assert exporters[0].client.api_url == "http://collector:8000"

    sql_config = XRayConfig(store="sql", database_url=f"sqlite+aiosqlite:///{tmp_path}/x.db")
    assert isinstance(XRayTracer.from_config(sql_config).store, SQLStore)


def test_from_config_keeps_explicit_hooks():
    class Hook:
        pass

    hook = Hook()
    tracer = XRayTracer.from_config(XRayConfig(store="memory"), execution_hooks=[hook], enabled=False)

    assert tracer.execution_hooks == [hook]
    assert not tracer.enabled


# --- Decorators ---


def test_xray_step_records_async_function():
    session = XRaySession(name="t")

    @xray_step(session, "search")
    async def search(keywords, limit=10):
        await asyncio.sleep(0)
        return [f"{k}-result" for k in keywords][:limit]

    result = run(search(["stand"], limit=5))

    assert result == ["stand-result"]
    step = session.get_execution().steps[0]
    assert step.name == "search"
    assert step.input == {"args": [["stand"]], "kwargs": {"limit": 5}}
    assert step.output == {"result": ["stand-result"]}


def test_xray_step_wraps_sync_function_and_defaults_name():
    session = XRaySession(name="t")

    @xray_step(session)
    def double(x):
        return x * 2

    assert run(double(21)) == 42
    step = session.get_execution().steps[0]
    assert step.name == "double"
    assert step.input == {"args": [21]}
    assert double.__name__ == "double"


def test_decorated_function_error_propagates_without_step():
    session = XRaySession(name="t")

    @xray_step(session, "explode")
    def explode():
        raise ValueError("bad input")

    with pytest.raises(ValueError, match="bad input"):
        run(explode())
    assert session.get_execution().steps == []


def test_skipped_step_still_runs_function():
    class SkipAll:
        def before_step(self, step_name):
            return False

    session = XRaySession(name="t", step_hooks=[SkipAll()])
    calls = []

    def work(x):
        calls.append(x)
        return x + 1

    wrapped = with_xray_step(session, "work", work)

    assert run(wrapped(1)) == 2
    assert calls == [1]
    assert session.get_execution().steps == []


def test_with_xray_step_validates_name():
    with pytest.raises(ValidationError):
        with_xray_step(XRaySession(name="t"), "", lambda: None)


def test_decorated_calls_record_one_step_each():
    session = XRaySession(name="t")
    add = with_xray_step(session, "add", lambda a, b: a + b)

    async def pipeline():
        return [await add(1, 2), await add(3, 4)]

    assert run(pipeline()) == [3, 7]
    assert [s.output["result"] for s in session.get_execution().steps] == [3, 7]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
