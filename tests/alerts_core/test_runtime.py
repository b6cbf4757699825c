"""
Tests for alerts_core/runtime.py
"""
import asyncio
import threading

import pytest

from alerts_core.runtime import WorkerRuntime


@pytest.fixture
def runtime():
    rt = WorkerRuntime(name='test-loop')
    yield rt
    rt.shutdown(timeout=2)


class TestWorkerRuntime:

    def test_run_returns_result(self, runtime):
        async def add(a, b):
            await asyncio.sleep(0)
            return a + b

        assert runtime.run(add(2, 3)) == 5
        assert runtime.running is True

    def test_runs_on_background_thread(self, runtime):
        async def thread_name():
            return threading.current_thread().name

        assert runtime.run(thread_name()) == 'test-loop'

    def test_exceptions_propagate(self, runtime):
        async def fail():
            raise ValueError("bad job")

        with pytest.raises(ValueError, match="bad job"):
            runtime.run(fail())

    def test_detached_tasks_outlive_the_job(self, runtime):
        finished = threading.Event()
        detached = []

        async def background():
            await asyncio.sleep(0.05)
            finished.set()

        async def job():
            detached.append(asyncio.get_running_loop().create_task(background()))
            return 'acked'

        assert runtime.run(job()) == 'acked'
        assert finished.wait(2)

    def test_shutdown_runs_cleanup(self):
        rt = WorkerRuntime()
        cleaned = []

        async def cleanup():
            cleaned.append(True)

        rt.start()
        rt.shutdown(cleanup=cleanup, timeout=2)

        assert cleaned == [True]
        assert rt.running is False

    def test_shutdown_without_start_is_noop(self):
        WorkerRuntime().shutdown()
