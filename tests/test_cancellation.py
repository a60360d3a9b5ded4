"""Tests for cancellation module."""

import threading

from treewatch.cancellation import CancellationToken


class TestCancellationToken:
    """Tests for CancellationToken class."""

    def test_initial_state(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.wait(timeout=0.01) is False

    def test_cancel(self):
        token = CancellationToken()

        assert token.cancel() is True
        assert token.cancelled is True
        assert token.wait(timeout=0.01) is True

    def test_cancel_twice(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancel() is False

    def test_callbacks_run_once(self):
        token = CancellationToken()
        calls = []
        token.add_callback(lambda: calls.append(1))

        token.cancel()
        token.cancel()

        assert calls == [1]

    def test_callback_added_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []

        token.add_callback(lambda: calls.append(1))

        assert calls == [1]

    def test_remove_callback(self):
        token = CancellationToken()
        calls = []

        def callback():
            calls.append(1)

        token.add_callback(callback)
        assert token.remove_callback(callback) is True
        assert token.remove_callback(callback) is False

        token.cancel()
        assert calls == []

    def test_failing_callback_does_not_stop_others(self):
        token = CancellationToken()
        calls = []

        def failing():
            raise RuntimeError("boom")

        token.add_callback(failing)
        token.add_callback(lambda: calls.append(1))
        token.cancel()

        assert calls == [1]

    def test_cancel_from_other_thread_wakes_waiter(self):
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()

        assert token.wait(timeout=2.0) is True
        timer.join()
