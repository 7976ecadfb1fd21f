import threading
import time

from src.overtime_ledger.overtime_ledger.ledger.locks import KeyedLock


def test_same_key_is_serialized():
    locks = KeyedLock()
    active = []
    overlaps = []

    def critical():
        with locks.hold("k"):
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            time.sleep(0.01)
            active.pop()

    threads = [threading.Thread(target=critical) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []


def test_different_keys_do_not_block():
    locks = KeyedLock()
    with locks.hold("a"):
        acquired = threading.Event()

        def other():
            with locks.hold("b"):
                acquired.set()

        t = threading.Thread(target=other)
        t.start()
        assert acquired.wait(timeout=1)
        t.join()


def test_slots_are_released():
    locks = KeyedLock()
    with locks.hold("a"):
        assert len(locks) == 1
    assert len(locks) == 0
