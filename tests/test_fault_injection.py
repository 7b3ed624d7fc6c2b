"""Tests for the fault-injecting unit of work and its wiring."""

import random
from unittest.mock import MagicMock

import pytest

from tasklane.api.deps import build_services, build_unit_of_work
from tasklane.domain.units import accept_payload
from tasklane.testing.fault_injection import InjectedFailure, RandomFailureUnitOfWork


def _fixed_random(value):
    rng = MagicMock()
    rng.random.return_value = value
    return rng


class TestRandomFailureUnitOfWork:
    def test_fails_below_rate(self):
        unit = RandomFailureUnitOfWork(0.3, rng=_fixed_random(0.1))
        with pytest.raises(InjectedFailure, match=r"Simulated task failure \(random: 0.100\)"):
            unit("t1", {})

    def test_succeeds_at_or_above_rate(self):
        unit = RandomFailureUnitOfWork(0.3, rng=_fixed_random(0.3))
        unit("t1", {})

    def test_rate_zero_never_fails(self):
        unit = RandomFailureUnitOfWork(0.0, rng=random.Random(7))
        for _ in range(50):
            unit("t1", {})

    def test_rate_one_always_fails(self):
        unit = RandomFailureUnitOfWork(1.0, rng=random.Random(7))
        with pytest.raises(InjectedFailure):
            unit("t1", {})

    @pytest.mark.parametrize("rate", [-0.1, 1.5])
    def test_rate_out_of_range(self, rate):
        with pytest.raises(ValueError, match="failure_rate"):
            RandomFailureUnitOfWork(rate)


class TestBuildUnitOfWork:
    def test_default_is_accept_payload(self):
        assert build_unit_of_work() is accept_payload

    def test_fault_injection_from_env(self, monkeypatch):
        monkeypatch.setenv("FAULT_INJECTION_RATE", "0.5")
        unit = build_unit_of_work()
        assert isinstance(unit, RandomFailureUnitOfWork)
        assert unit.failure_rate == 0.5


class TestBuildServices:
    def test_conditional_updates_default_on(self, store):
        services = build_services(store=store)
        assert services.controller._conditional is True
        assert services.max_delivery_attempts == 3

    @pytest.mark.parametrize("raw", ["false", "0", "off"])
    def test_conditional_updates_disabled(self, store, monkeypatch, raw):
        monkeypatch.setenv("LIFECYCLE_CONDITIONAL_UPDATES", raw)
        assert build_services(store=store).controller._conditional is False
