"""Decoding and polling of the field sensors: SHTC3 climate, PZEM-004T power, pressure."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Sequence

from farmbox.rs485 import ModbusError

logger = logging.getLogger(__name__)

SHTC3_ADDR_1 = 0x01
SHTC3_ADDR_2 = 0x02

SCALE_V = 0.1
SCALE_A = 0.001
SCALE_P = 0.1
SCALE_E = 1
SCALE_H = 0.1
SCALE_PF = 0.01

ADC_FULL_SCALE = 4095.0
PRESSURE_SUPPLY_VOLTAGE = 5.0
PRESSURE_FAILED = -1.0


class PzemRegister(IntEnum):
    """Input register layout of the PZEM-004T energy meter."""

    VOLTAGE = 0
    CURRENT_H = 1
    CURRENT_L = 2
    POWER_H = 3
    POWER_L = 4
    ENERGY_H = 5
    ENERGY_L = 6
    FREQ = 7
    PF = 8
    RESERVED = 9


PZEM_REGISTER_COUNT = len(PzemRegister)


@dataclass
class ClimateReading:
    """Temperature in degrees Celsius and relative humidity in percent."""

    temperature: float = 0.0
    humidity: float = 0.0


@dataclass
class PowerReading:
    """Electrical quantities reported by the energy meter."""

    volt: float = 0.0
    ampe: float = 0.0
    power: float = 0.0
    energy: float = 0.0
    freq: float = 0.0
    power_factor: float = 0.0


@dataclass
class Telemetry:
    """One full set of measurements, ready to publish."""

    climate1: ClimateReading = field(default_factory=ClimateReading)
    climate2: ClimateReading = field(default_factory=ClimateReading)
    power: PowerReading = field(default_factory=PowerReading)
    pressure: float = 0.0

    def to_json(self) -> str:
        """Render the telemetry message in the layout the dashboard expects."""
        c1, c2, p = self.climate1, self.climate2, self.power
        return (
            "{"
            f'"Temp":{c1.temperature:.2f},'
            f'"Hum":"{c1.humidity:.2f}",'
            f'"Temp2":{c2.temperature:.2f},'
            f'"Hum2":"{c2.humidity:.2f}",'
            f'"Volt":{p.volt:.2f},'
            f'"Ampe":"{p.ampe:.2f}",'
            f'"Power":"{p.power:.2f}",'
            f'"Energy":"{p.energy:.2f}",'
            f'"Freq":"{p.freq:.2f}",'
            f'"Power Factor":"{p.power_factor:.2f}",'
            f'"Pressure":"{self.pressure:.2f}"'
            "}"
        )


def _signed16(value: int) -> int:
    return value - 0x10000 if value >= 0x8000 else value


def _join32(high: int, low: int) -> int:
    return ((high & 0xFFFF) << 16) | (low & 0xFFFF)


def decode_shtc3(registers: Sequence[int]) -> ClimateReading:
    """Decode the two SHTC3 registers: humidity, then signed temperature, both in tenths."""
    if len(registers) < 2:
        raise ValueError(f"SHTC3 reading needs 2 registers, got {len(registers)}")
    humidity_raw, temperature_raw = registers[0], registers[1]
    return ClimateReading(
        temperature=_signed16(temperature_raw) / 10.0,
        humidity=humidity_raw / 10.0,
    )


def decode_pzem(registers: Sequence[int]) -> PowerReading:
    """Decode the PZEM-004T input registers into scaled quantities."""
    if len(registers) < PzemRegister.PF + 1:
        raise ValueError(
            f"PZEM reading needs at least {PzemRegister.PF + 1} registers, got {len(registers)}"
        )
    r = registers
    return PowerReading(
        volt=r[PzemRegister.VOLTAGE] * SCALE_V,
        ampe=_join32(r[PzemRegister.CURRENT_H], r[PzemRegister.CURRENT_L]) * SCALE_A,
        power=_join32(r[PzemRegister.POWER_H], r[PzemRegister.POWER_L]) * SCALE_P,
        energy=float(_join32(r[PzemRegister.ENERGY_H], r[PzemRegister.ENERGY_L]) * SCALE_E),
        freq=r[PzemRegister.FREQ] * SCALE_H,
        power_factor=r[PzemRegister.PF] * SCALE_PF,
    )


def decode_pressure(raw: int) -> float:
    """Convert a raw 12-bit ADC count from the pressure transducer into pressure."""
    voltage = raw * (PRESSURE_SUPPLY_VOLTAGE / ADC_FULL_SCALE)
    return (voltage - 0.5) / 4.0


def read_shtc3(bus: Any, address: int) -> ClimateReading:
    """Poll the SHTC3 at ``address``; a failed read yields zeros."""
    bus.address = address
    try:
        registers = bus.read_holding_registers(0x0000, 2)
    except ModbusError as exc:
        logger.debug("Read SHTC3 at address %d failed: %s", address, exc)
        return ClimateReading()
    reading = decode_shtc3(registers)
    logger.debug(
        "SHTC3 %d: temp %.2f oC, hum %.2f %%", address, reading.temperature, reading.humidity
    )
    return reading


def read_pzem(bus: Any) -> PowerReading:
    """Poll the energy meter; a failed read yields zeros."""
    try:
        registers = bus.read_input_registers(0x0000, PZEM_REGISTER_COUNT)
    except ModbusError as exc:
        logger.debug("Read PZEM004T failed: %s", exc)
        return PowerReading()
    logger.debug("Read PZEM004T success.")
    return decode_pzem(registers)


def read_pressure(bus: Any) -> float:
    """Poll the pressure sensor; a failed read yields -1.0."""
    try:
        (raw,) = bus.read_holding_registers(0x0000, 1)
    except ModbusError as exc:
        logger.debug("Read pressure failed: %s", exc)
        return PRESSURE_FAILED
    return decode_pressure(raw)