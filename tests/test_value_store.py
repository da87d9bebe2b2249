import pytest

from kadnet.value_store import ValueStore


def test_save_then_load_round_trips():
    store = ValueStore()
    store.save(b"key", b"data")
    assert store.load(b"key") == b"data"


def test_missing_key_raises_key_error():
    store = ValueStore()
    with pytest.raises(KeyError):
        store.load(b"absent")


def test_save_overwrites_previous_value():
    store = ValueStore()
    store.save(b"key", b"first")
    store.save(b"key", b"second")
    assert store.load(b"key") == b"second"
    assert len(store) == 1


def test_equal_keys_of_different_types_match():
    store = ValueStore()
    store.save(bytearray(b"key"), [1, 2, 3])
    assert store.load(b"key") == bytes([1, 2, 3])
    assert list(b"key") in store
    assert memoryview(b"key") in store


def test_stored_data_is_copied():
    store = ValueStore()
    data = bytearray(b"data")
    store.save(b"key", data)
    data[0] = ord("X")
    assert store.load(b"key") == b"data"


def test_contains_and_len():
    store = ValueStore()
    assert len(store) == 0
    assert b"a" not in store
    store.save(b"a", b"1")
    store.save(b"b", b"2")
    assert len(store) == 2
    assert b"a" in store
    assert "not bytes" not in store
    assert sorted(store) == [b"a", b"b"]