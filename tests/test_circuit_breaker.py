import threading
import unittest

from fakes import FakeClock

from storyline.resilience.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState


def _boom():
    raise RuntimeError("upstream down")


class TestCircuitBreaker(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.breaker = CircuitBreaker(failure_threshold=3, reset_timeout=0.1, half_open_max_calls=2, clock=self.clock)

    def _fail(self, name="ai", times=1):
        for _ in range(times):
            with self.assertRaises(RuntimeError):
                self.breaker.execute(name, _boom)

    def test_opens_after_threshold_failures(self):
        self._fail(times=2)
        self.assertEqual(self.breaker.get_state("ai"), CircuitState.CLOSED)
        self._fail()
        self.assertEqual(self.breaker.get_state("ai"), CircuitState.OPEN)

    def test_open_circuit_never_calls_function(self):
        self._fail(times=3)
        calls = []
        with self.assertRaises(CircuitOpenError) as ctx:
            self.breaker.execute("ai", lambda: calls.append(1))
        self.assertEqual(str(ctx.exception), "Circuit breaker is OPEN for ai")
        self.assertEqual(self.breaker.execute("ai", lambda: calls.append(1), fallback=lambda: "fb"), "fb")
        self.assertEqual(calls, [])

    def test_probe_after_reset_timeout_closes(self):
        self._fail(times=3)
        self.clock.advance(0.15)
        self.assertEqual(self.breaker.execute("ai", lambda: "ok"), "ok")
        self.assertEqual(self.breaker.get_state("ai"), CircuitState.CLOSED)
        self.assertEqual(self.breaker.get_all_metrics()["ai"]["failures"], 0)

    def test_failed_probe_reopens(self):
        self._fail(times=3)
        self.clock.advance(0.15)
        self._fail()
        self.assertEqual(self.breaker.get_state("ai"), CircuitState.OPEN)
        # new failure timestamp: still open right after
        self.clock.advance(0.05)
        with self.assertRaises(CircuitOpenError):
            self.breaker.execute("ai", lambda: "ok")

    def test_half_open_probe_budget(self):
        self._fail(times=3)
        self.clock.advance(0.15)
        admitted = []

        def probe():
            admitted.append(1)
            # while the first probes are in flight, a third caller arrives
            if len(admitted) == 2:
                with self.assertRaises(CircuitOpenError) as ctx:
                    self.breaker.execute("ai", lambda: "third")
                self.assertEqual(ctx.exception.reason, "half-open call limit reached")
            return "ok"

        def first():
            admitted.append(1)
            return self.breaker.execute("ai", probe)

        self.assertEqual(self.breaker.execute("ai", first), "ok")
        self.assertEqual(len(admitted), 2)

    def test_circuits_are_independent(self):
        self._fail("feed", times=3)
        self.assertEqual(self.breaker.get_state("feed"), CircuitState.OPEN)
        self.assertEqual(self.breaker.execute("ai", lambda: 42), 42)
        self.assertEqual(self.breaker.get_state("ai"), CircuitState.CLOSED)

    def test_fallback_used_when_call_fails(self):
        self.assertEqual(self.breaker.execute("ai", _boom, fallback=lambda: "neutral"), "neutral")
        self.assertEqual(self.breaker.get_all_metrics()["ai"]["failures"], 1)

    def test_interleaved_failures_accumulate(self):
        self._fail(times=2)
        self.breaker.execute("ai", lambda: None)
        self.assertEqual(self.breaker.get_state("ai"), CircuitState.CLOSED)
        self._fail()
        self.assertEqual(self.breaker.get_state("ai"), CircuitState.OPEN)
        m = self.breaker.get_all_metrics()["ai"]
        self.assertEqual(m["failures"], 3)
        self.assertEqual(m["successes"], 1)
        with self.assertRaises(CircuitOpenError):
            self.breaker.execute("ai", lambda: None)

    def test_success_while_closed_keeps_failure_count(self):
        self._fail()
        self.breaker.execute("ai", lambda: None)
        self.breaker.execute("ai", lambda: None)
        self.assertEqual(self.breaker.get_all_metrics()["ai"]["failures"], 1)

    def test_reset_forces_closed(self):
        self._fail(times=3)
        self.breaker.reset("ai")
        self.assertEqual(self.breaker.get_state("ai"), CircuitState.CLOSED)
        self.assertEqual(self.breaker.execute("ai", lambda: "ok"), "ok")

    def test_metrics_snapshot(self):
        self.breaker.execute("ai", lambda: None)
        self._fail()
        m = self.breaker.get_all_metrics()["ai"]
        self.assertEqual(m["state"], "CLOSED")
        self.assertEqual(m["successes"], 1)
        self.assertEqual(m["failures"], 1)
        self.assertEqual(m["last_failure_time"], self.clock.now)

    def test_concurrent_failures_are_all_counted(self):
        breaker = CircuitBreaker(failure_threshold=1000)

        def worker():
            for _ in range(50):
                breaker.execute("shared", _boom, fallback=lambda: None)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(breaker.get_all_metrics()["shared"]["failures"], 400)


if __name__ == "__main__":
    unittest.main()
