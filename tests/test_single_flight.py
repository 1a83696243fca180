"""
Tests for the single-flight guard.
"""
from mongoagent.core.single_flight import SingleFlight


def test_only_one_holder():
    guard = SingleFlight()

    handle = guard.try_acquire("act-1")

    assert handle is not None
    assert guard.is_held()
    assert guard.holder == "act-1"
    assert guard.try_acquire("act-2") is None
    assert guard.info()["owner"] == "act-1"


def test_release_frees_slot():
    guard = SingleFlight()
    handle = guard.try_acquire("act-1")

    handle.release()
    handle.release()

    assert not guard.is_held()
    assert guard.info() is None
    assert guard.try_acquire("act-2") is not None


def test_context_manager_releases_on_error():
    guard = SingleFlight()

    try:
        with guard.try_acquire("act-1"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert guard.holder is None


def test_stale_handle_does_not_release_new_holder():
    guard = SingleFlight()
    stale = guard.try_acquire("act-1")
    stale.release()
    guard.try_acquire("act-2")

    stale.release()

    assert guard.holder == "act-2"
