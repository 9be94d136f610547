"""Tests for the pacing primitive."""

from bioshield.throttle import Pacer


def test_first_wait_does_not_sleep(fake_clock):
    pacer = Pacer(2.0, clock=fake_clock, sleep=fake_clock.sleep)
    assert pacer.wait() == 0.0
    assert fake_clock.sleeps == []


def test_wait_sleeps_for_remaining_interval(fake_clock):
    pacer = Pacer(2.0, clock=fake_clock, sleep=fake_clock.sleep)
    pacer.mark()
    fake_clock.now += 0.5

    assert pacer.wait() == 1.5
    assert fake_clock.sleeps == [1.5]


def test_no_sleep_once_interval_has_passed(fake_clock):
    pacer = Pacer(0.5, clock=fake_clock, sleep=fake_clock.sleep)
    pacer.wait()
    fake_clock.now += 3

    assert pacer.wait() == 0.0
    assert fake_clock.sleeps == []


def test_consecutive_waits_are_spaced(fake_clock):
    pacer = Pacer(0.5, clock=fake_clock, sleep=fake_clock.sleep)
    for _ in range(4):
        pacer.wait()

    assert fake_clock.sleeps == [0.5, 0.5, 0.5]


def test_reset_forgets_last_mark(fake_clock):
    pacer = Pacer(2.0, clock=fake_clock, sleep=fake_clock.sleep)
    pacer.mark()
    pacer.reset()

    assert pacer.wait() == 0.0
