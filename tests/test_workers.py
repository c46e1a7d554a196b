from __future__ import annotations

import time

from PySide6 import QtCore

from workers import CallableWorker, LatestOnlyRunner


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        QtCore.QCoreApplication.processEvents()
        time.sleep(0.005)
    return predicate()


def test_worker_reports_result_and_failure():
    results, failures = [], []
    ok = CallableWorker(3, lambda: 42)
    ok.finished.connect(lambda token, value: results.append((token, value)))
    ok.run()

    def boom():
        raise ValueError("bad input")

    bad = CallableWorker(4, boom)
    bad.failed.connect(lambda token, msg: failures.append((token, msg)))
    bad.run()

    assert results == [(3, 42)]
    assert failures == [(4, "bad input")]


def test_runner_delivers_latest_result():
    runner = LatestOnlyRunner()
    results = []
    runner.resultReady.connect(lambda token, value: results.append((token, value)))
    token = runner.submit(lambda: "done")
    try:
        assert wait_for(lambda: results)
        assert results == [(token, "done")]
    finally:
        runner.shutdown()


def test_runner_drops_stale_results():
    runner = LatestOnlyRunner()
    results = []
    runner.resultReady.connect(lambda token, value: results.append(value))
    token = runner.submit(lambda: "old")
    runner.cancel()
    assert not runner.is_current(token)
    runner._on_finished(token, "old")
    runner._on_failed(token, "late")
    assert results == []
    runner.shutdown()
