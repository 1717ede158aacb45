import pytest

from farmbox.crc import append_crc, check_crc
from farmbox.rs485 import (
    RS485,
    ModbusCRCError,
    ModbusError,
    ModbusTimeoutError,
    build_read_request,
    build_write_multiple_request,
    build_write_single_request,
    open_serial,
    parse_read_response,
)


class FakePort:
    def __init__(self, response=b""):
        self.response = bytearray(response)
        self.written = []
        self.resets = 0

    def reset_input_buffer(self):
        self.resets += 1

    def write(self, data):
        self.written.append(bytes(data))
        return len(data)

    def read(self, size=1):
        chunk = bytes(self.response[:size])
        del self.response[:size]
        return chunk


def read_response(address, function, values):
    body = bytes([address, function, len(values) * 2])
    for value in values:
        body += value.to_bytes(2, "big")
    return append_crc(body)


def make_bus(response=b"", address=0x01):
    port = FakePort(response)
    return RS485(port, address=address, timeout=0.01, turnaround=0), port


def test_read_request_wire_bytes():
    assert build_read_request(0x01, 0x03, 0x0000, 1) == bytes(
        [0x01, 0x03, 0x00, 0x00, 0x00, 0x01, 0x84, 0x0A]
    )


def test_read_request_layout():
    frame = build_read_request(0xF8, 0x04, 0x1234, 10)
    assert frame[:6] == bytes([0xF8, 0x04, 0x12, 0x34, 0x00, 0x0A])
    assert len(frame) == 8
    assert check_crc(frame)


@pytest.mark.parametrize("count", [0, 126])
def test_read_request_rejects_bad_count(count):
    with pytest.raises(ValueError):
        build_read_request(1, 3, 0, count)


def test_write_single_request_layout():
    frame = build_write_single_request(0x01, 0x07D0, 0x0002)
    assert frame[:6] == bytes([0x01, 0x06, 0x07, 0xD0, 0x00, 0x02])
    assert len(frame) == 8
    assert check_crc(frame)


def test_write_single_rejects_out_of_range_value():
    with pytest.raises(ValueError):
        build_write_single_request(1, 0, 0x10000)


def test_write_multiple_request_layout():
    frame = build_write_multiple_request(0x02, 0x0010, [0x0102, 0x0304])
    assert frame[:7] == bytes([0x02, 0x10, 0x00, 0x10, 0x00, 0x02, 0x04])
    assert frame[7:11] == bytes([0x01, 0x02, 0x03, 0x04])
    assert len(frame) == 9 + 4
    assert check_crc(frame)


@pytest.mark.parametrize("values", [[], [0] * 124])
def test_write_multiple_rejects_bad_length(values):
    with pytest.raises(ValueError):
        build_write_multiple_request(1, 0, values)


def test_parse_read_response_values():
    frame = read_response(1, 3, [0x0123, 0xFFFF])
    assert parse_read_response(frame, 2) == [0x0123, 0xFFFF]


def test_parse_read_response_wrong_length_is_timeout():
    frame = read_response(1, 3, [5])
    with pytest.raises(ModbusTimeoutError):
        parse_read_response(frame, 2)


def test_parse_read_response_bad_crc():
    frame = bytearray(read_response(1, 3, [5]))
    frame[-1] ^= 0xFF
    with pytest.raises(ModbusCRCError):
        parse_read_response(bytes(frame), 1)


def test_errors_can_be_caught_by_base_class():
    short = read_response(1, 3, [5])
    with pytest.raises(ModbusError):
        parse_read_response(short, 2)
    corrupted = bytearray(short)
    corrupted[-1] ^= 0xFF
    with pytest.raises(ModbusError):
        parse_read_response(bytes(corrupted), 1)


def test_read_holding_registers_round_trip():
    bus, port = make_bus(read_response(1, 3, [650, 0xFF38]))
    assert bus.read_holding_registers(0x0000, 2) == [650, 0xFF38]
    assert port.written == [build_read_request(1, 0x03, 0x0000, 2)]
    assert port.resets == 1


def test_read_input_registers_uses_function_4():
    values = list(range(10))
    bus, port = make_bus(read_response(0xF8, 4, values), address=0xF8)
    assert bus.read_input_registers(0x0000, 10) == values
    assert port.written[0][1] == 0x04


def test_read_times_out_on_short_answer():
    bus, _ = make_bus(read_response(1, 3, [1])[:4])
    with pytest.raises(ModbusTimeoutError):
        bus.read_holding_registers(0, 1)


def test_read_times_out_on_silence():
    bus, _ = make_bus(b"")
    with pytest.raises(ModbusTimeoutError):
        bus.read_holding_registers(0, 1)


def test_read_rejects_bad_count_before_sending():
    bus, port = make_bus()
    with pytest.raises(ValueError):
        bus.read_holding_registers(0, 0)
    assert port.written == []


def test_address_can_be_changed():
    bus, port = make_bus(read_response(2, 3, [7]))
    bus.address = 2
    assert bus.read_holding_registers(0, 1) == [7]
    assert port.written[0][0] == 2


def test_write_single_register_sends_frame_and_accepts_echo():
    request = build_write_single_request(1, 0x07D0, 2)
    bus, port = make_bus(request)
    bus.write_single_register(0x07D0, 2)
    assert port.written == [request]


def test_write_multiple_registers_accepts_ack():
    ack = append_crc(bytes([1, 0x10, 0x00, 0x05, 0x00, 0x02]))
    bus, port = make_bus(ack)
    bus.write_multiple_registers(0x0005, [10, 20])
    assert port.written == [build_write_multiple_request(1, 0x0005, [10, 20])]


def test_write_bad_crc_in_response():
    response = bytearray(build_write_single_request(1, 0, 1))
    response[-2] ^= 0x55
    bus, _ = make_bus(bytes(response))
    with pytest.raises(ModbusCRCError):
        bus.write_single_register(0, 1)


def test_write_times_out_without_answer():
    bus, _ = make_bus(b"\x01\x06")
    with pytest.raises(ModbusTimeoutError):
        bus.write_single_register(0, 1)


def test_open_serial_loopback_sets_baudrate():
    port = open_serial("loop://", 4800)
    try:
        assert port.baudrate == 4800
        port.write(b"\x01\x02")
        assert port.read(2) == b"\x01\x02"
    finally:
        port.close()