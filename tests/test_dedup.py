import pytest

from driftbot.services.dedup import InFlightRegistry


def test_second_acquire_is_refused_until_release():
    registry = InFlightRegistry()

    assert registry.try_acquire("octo/demo#1@abc") is True
    assert registry.try_acquire("octo/demo#1@abc") is False
    assert len(registry) == 1

    registry.release("octo/demo#1@abc")

    assert registry.try_acquire("octo/demo#1@abc") is True


def test_keys_are_independent():
    registry = InFlightRegistry()

    assert registry.try_acquire("octo/demo#1@abc")
    assert registry.try_acquire("octo/demo#1@def")
    assert registry.try_acquire("octo/demo#2@abc")
    assert len(registry) == 3


def test_release_of_unknown_key_is_harmless():
    registry = InFlightRegistry()

    registry.release("missing")

    assert len(registry) == 0


def test_hold_releases_on_error():
    registry = InFlightRegistry()

    with pytest.raises(RuntimeError):
        with registry.hold("k") as acquired:
            assert acquired
            raise RuntimeError("boom")

    assert len(registry) == 0


def test_hold_does_not_release_a_key_it_did_not_acquire():
    registry = InFlightRegistry()
    registry.try_acquire("k")

    with registry.hold("k") as acquired:
        assert acquired is False

    assert len(registry) == 1
