import pytest

from farmbox.crc import append_crc, check_crc, modbus_crc


def test_standard_check_value():
    assert modbus_crc(b"123456789") == 0x4B37


def test_empty_data_is_initial_value():
    assert modbus_crc(b"") == 0xFFFF


def test_append_crc_known_read_frame():
    frame = append_crc(bytes([0x01, 0x03, 0x00, 0x00, 0x00, 0x01]))
    assert frame[-2:] == b"\x84\x0a"


def test_append_crc_is_little_endian_crc():
    body = b"\x11\x22\x33"
    frame = append_crc(body)
    assert frame[:3] == body
    assert int.from_bytes(frame[3:], "little") == modbus_crc(body)


@pytest.mark.parametrize(
    "body",
    [b"\x00", b"\xff" * 10, bytes(range(256)), b"\xf8\x04\x00\x00\x00\x0a"],
)
def test_frame_with_crc_checks_to_zero(body):
    frame = append_crc(body)
    assert modbus_crc(frame) == 0
    assert check_crc(frame)


def test_corrupted_frame_fails_check():
    frame = bytearray(append_crc(b"\x01\x06\x07\xd0\x00\x02"))
    frame[2] ^= 0x01
    assert not check_crc(frame)


def test_too_short_frame_fails_check():
    assert not check_crc(b"\x00")


def test_accepts_bytearray_and_memoryview():
    data = b"\x01\x02\x03"
    assert modbus_crc(bytearray(data)) == modbus_crc(memoryview(data)) == modbus_crc(data)