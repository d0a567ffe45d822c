"""
Tests for the keyed scheduling locks.
"""

import threading
from datetime import date

import pytest

from appointmentcore.adapters.locks import KeyedLocks, slot_key
from appointmentcore.domain.exceptions import StoreBusy


class TestKeyedLocks:
    """Tests for KeyedLocks."""

    def test_slot_key(self):
        assert slot_key("coaching", date(2024, 3, 12)) == "coaching@2024-03-12"

    def test_keys_are_sorted_and_unique(self):
        locks = KeyedLocks()

        with locks.hold(["b", "a", "b"]) as ordered:
            assert ordered == ["a", "b"]
            assert len(locks) == 2

        assert len(locks) == 0

    def test_wait_gives_up_after_timeout(self):
        locks = KeyedLocks(timeout=0.05)

        with locks.hold(["a"]):
            with pytest.raises(StoreBusy):
                with locks.hold(["a"]):
                    pass
            assert len(locks) == 1

        assert len(locks) == 0

    def test_partial_acquisition_is_released(self):
        locks = KeyedLocks(timeout=0.05)
        held = threading.Event()
        release = threading.Event()

        def hold_b():
            with locks.hold(["b"]):
                held.set()
                release.wait(5)

        holder = threading.Thread(target=hold_b)
        holder.start()
        held.wait(5)
        try:
            with pytest.raises(StoreBusy):
                with locks.hold(["a", "b"]):
                    pass
            # "a" was taken before "b" timed out and must be free again
            with locks.hold(["a"]):
                pass
        finally:
            release.set()
            holder.join()

        assert len(locks) == 0

    def test_waiter_runs_after_release(self):
        locks = KeyedLocks(timeout=5)
        order = []
        held = threading.Event()

        def wait_for_a():
            held.wait(5)
            with locks.hold(["a"]):
                order.append("acquired")

        waiter = threading.Thread(target=wait_for_a)
        with locks.hold(["a"]):
            waiter.start()
            held.set()
            # Give the waiter time to block on the lock
            threading.Event().wait(0.1)
            order.append("released")
        waiter.join()

        assert order == ["released", "acquired"]
        assert len(locks) == 0

    def test_many_keys_do_not_accumulate(self):
        locks = KeyedLocks()

        for day in range(1, 29):
            with locks.hold([slot_key("consultation", date(2024, 2, day))]):
                pass

        assert len(locks) == 0
