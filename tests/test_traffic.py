"""Tests for the traffic shift engine and TrafficState."""

import pytest

from bluegreen.deployment import (
    InvalidTrafficState,
    Slot,
    TrafficShiftEngine,
    TrafficState,
)

from conftest import make_harness


class TestTrafficState:
    def test_must_sum_to_100(self):
        with pytest.raises(InvalidTrafficState):
            TrafficState(blue=60, green=50)

    def test_routed_to(self):
        assert TrafficState.routed_to(Slot.GREEN) == TrafficState(blue=0, green=100)
        assert TrafficState.routed_to(Slot.BLUE) == TrafficState(blue=100, green=0)

    def test_between_maps_from_to_onto_slots(self):
        assert TrafficState.between(Slot.BLUE, Slot.GREEN, 90, 10) == TrafficState(90, 10)
        assert TrafficState.between(Slot.GREEN, Slot.BLUE, 90, 10) == TrafficState(10, 90)

    def test_between_same_slot_rejected(self):
        with pytest.raises(ValueError):
            TrafficState.between(Slot.BLUE, Slot.BLUE, 50, 50)

    def test_weight_for(self):
        state = TrafficState(blue=30, green=70)
        assert state.weight_for(Slot.BLUE) == 30
        assert state.weight_for(Slot.GREEN) == 70


class TestTrafficShiftEngine:
    def test_schedule_applied_in_order(self, tmp_path):
        h = make_harness(tmp_path)
        blue, green = h.store.environments()
        result = h.traffic.shift(blue, green, [(90, 10), (50, 50), (0, 100)], check_health=False)

        assert result.completed
        assert result.applied == [TrafficState(90, 10), TrafficState(50, 50), TrafficState(0, 100)]
        assert result.final == TrafficState(0, 100)
        assert len(h.proxy.reloads) == 3
        assert "shop-blue-app:8081 weight=90" in h.proxy.reloads[0]
        assert "shop-green-app:8082 weight=10" in h.proxy.reloads[0]
        assert "shop-blue-app:8081 weight=50" in h.proxy.reloads[1]
        assert "shop-blue-app:8081" not in h.proxy.reloads[2].split("upstream", 1)[1]
        assert h.store.weights() == (0, 100)

    def test_invalid_step_rejected_before_any_apply(self, tmp_path):
        h = make_harness(tmp_path)
        blue, green = h.store.environments()
        with pytest.raises(InvalidTrafficState):
            h.traffic.shift(blue, green, [(90, 10), (60, 50), (0, 100)], check_health=False)
        assert h.proxy.reloads == []
        assert h.store.weights() == (100, 0)

    def test_observation_pause_between_steps_only(self, tmp_path):
        h = make_harness(tmp_path, observation_window=3.0)
        blue, green = h.store.environments()
        h.traffic.shift(blue, green, [(90, 10), (50, 50), (0, 100)], check_health=False)
        assert h.sleeps == [3.0, 3.0]

    def test_on_step_sees_each_state(self, tmp_path):
        h = make_harness(tmp_path)
        blue, green = h.store.environments()
        seen = []
        h.traffic.shift(blue, green, [(50, 50), (0, 100)], on_step=seen.append, check_health=False)
        assert seen == [TrafficState(50, 50), TrafficState(0, 100)]

    def test_failed_post_shift_check_restores_last_good(self, tmp_path):
        h = make_harness(tmp_path, post_shift_health_retries=2)
        h.health.set(8082, 200, 503)
        blue, green = h.store.environments()

        result = h.traffic.shift(blue, green, [(90, 10), (50, 50), (0, 100)])

        assert result.aborted
        assert result.final == TrafficState(90, 10)
        assert result.applied == [TrafficState(90, 10), TrafficState(50, 50)]
        assert "weight=90" in h.proxy.reloads[-1]
        assert len(h.proxy.reloads) == 3
        assert h.store.weights() == (90, 10)
        assert "health check failed" in result.reason

    def test_first_step_failure_returns_to_start(self, tmp_path):
        h = make_harness(tmp_path)
        h.health.set(8082, 503)
        blue, green = h.store.environments()
        result = h.traffic.shift(blue, green, [(90, 10), (0, 100)])
        assert result.aborted
        assert result.final == TrafficState(100, 0)
        assert h.store.weights() == (100, 0)

    def test_health_check_needs_prober(self, tmp_path):
        h = make_harness(tmp_path)
        engine = TrafficShiftEngine(h.config, h.proxy)
        blue, green = h.store.environments()
        with pytest.raises(ValueError):
            engine.shift(blue, green, [(0, 100)], check_health=True)

    def test_render_is_deterministic(self, tmp_path):
        h = make_harness(tmp_path)
        state = TrafficState(70, 30)
        assert h.traffic.render(state) == h.traffic.render(state)
