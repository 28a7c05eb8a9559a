import time

import pytest

from ersha.ulid import Ulid


def test_zero_encodes_as_all_zero_digits():
    assert str(Ulid(0)) == "0" * 26


def test_max_value_encoding():
    assert str(Ulid((1 << 128) - 1)) == "7" + "Z" * 25


def test_string_round_trip():
    ulid = Ulid.new()
    assert Ulid.from_str(str(ulid)) == ulid


def test_lowercase_is_accepted():
    ulid = Ulid.new()
    assert Ulid.from_str(str(ulid).lower()) == ulid


def test_bytes_round_trip():
    ulid = Ulid.new()
    data = ulid.to_bytes()
    assert len(data) == 16
    assert Ulid.from_bytes(data) == ulid


def test_bytes_are_big_endian():
    assert Ulid(1).to_bytes() == bytes(15) + b"\x01"


@pytest.mark.parametrize("text", ["", "0" * 25, "0" * 27])
def test_wrong_length_rejected(text):
    with pytest.raises(ValueError):
        Ulid.from_str(text)


def test_invalid_character_rejected():
    with pytest.raises(ValueError):
        Ulid.from_str("U" + "0" * 25)


def test_overflow_rejected():
    with pytest.raises(ValueError):
        Ulid.from_str("8" + "0" * 25)


def test_from_bytes_wrong_length():
    with pytest.raises(ValueError):
        Ulid.from_bytes(b"\x00" * 15)


def test_out_of_range_value():
    with pytest.raises(ValueError):
        Ulid(-1)
    with pytest.raises(ValueError):
        Ulid(1 << 128)


def test_non_integer_value():
    with pytest.raises(TypeError):
        Ulid(True)


def test_new_carries_current_time():
    before = time.time_ns() // 1_000_000
    ulid = Ulid.new()
    after = time.time_ns() // 1_000_000
    assert before <= ulid.timestamp_ms <= after


def test_new_values_are_unique():
    assert len({Ulid.new() for _ in range(200)}) == 200


def test_string_order_matches_value_order():
    ulids = [Ulid.new() for _ in range(50)]
    assert sorted(ulids) == sorted(ulids, key=str)


def test_repr_contains_text():
    ulid = Ulid.new()
    assert str(ulid) in repr(ulid)