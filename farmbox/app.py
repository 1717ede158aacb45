"""The gateway: polls the sensors, reports to the broker and shows status."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from enum import Enum, IntEnum
from typing import Any, Callable, Sequence

from farmbox.mqtt import MQTT_PORT, THINGSBOARD_SERVER, TelemetryClient
from farmbox.rs485 import RS485, ModbusError, open_serial
from farmbox.sensors import (
    SHTC3_ADDR_1,
    SHTC3_ADDR_2,
    Telemetry,
    read_pressure,
    read_pzem,
    read_shtc3,
)
from farmbox.settings import DeviceSettings, SettingsStore, apply_portal_values

logger = logging.getLogger(__name__)

CONFIG_TIME_S = 3.0
SHTC3_BAUDRATE = 4800
PZEM_BAUDRATE = 9600
PZEM_ADDRESS = 0xF8
PRESSURE_ADDRESS = 0x01
SHTC3_ADDRESS_REGISTER = 0x07D0

TRIPLE_PRESS = "triple_press"
LONG_HOLD = "hold"


class ColorMode(IntEnum):
    """Status shown on the LED ring."""

    OFF = 0
    RED = 1
    GREEN = 2
    BLUE = 3
    PURPLE = 4

    @property
    def rgb(self) -> tuple[int, int, int]:
        return _RGB[self]


_RGB = {
    ColorMode.OFF: (0, 0, 0),
    ColorMode.RED: (150, 0, 0),
    ColorMode.GREEN: (0, 150, 0),
    ColorMode.BLUE: (0, 0, 150),
    ColorMode.PURPLE: (150, 0, 150),
}


class WorkMode(Enum):
    MANUAL = 0
    AUTO = 1


class ButtonMonitor:
    """Detects a triple press and a long hold of the configuration button."""

    def __init__(self, pressed: bool = False, now: float = 0.0, hold_time: float = CONFIG_TIME_S) -> None:
        self.hold_time = hold_time
        self.work_mode = WorkMode.MANUAL
        self.press_count = 0
        self.config_triggered = False
        self._last_pressed = pressed
        self._last_change = now
        self._hold_start: float | None = None

    def update(self, pressed: bool, now: float) -> list[str]:
        """Feed the button state at time ``now`` (seconds); return the events detected."""
        events: list[str] = []
        if pressed != self._last_pressed:
            if pressed:
                self.press_count += 1
            self._last_pressed = pressed
            self._last_change = now
        if now - self._last_change > self.hold_time:
            self.press_count = 0
        if self.press_count == 3:
            self.work_mode = WorkMode.AUTO
            self.press_count = 0
            events.append(TRIPLE_PRESS)

        if pressed:
            if self._hold_start is None:
                self._hold_start = now
            elif not self.config_triggered and now - self._hold_start >= self.hold_time:
                self.config_triggered = True
                events.append(LONG_HOLD)
        else:
            self._hold_start = None
            self.config_triggered = False
        return events


def _set_baud(bus: Any, baudrate: int) -> None:
    port = getattr(bus, "port", None)
    if port is not None and hasattr(port, "baudrate") and port.baudrate != baudrate:
        port.baudrate = baudrate


class Gateway:
    """Ties the sensor buses, the MQTT client and the status LED together."""

    def __init__(
        self,
        settings: DeviceSettings,
        mqtt: Any,
        climate_bus: Any,
        power_bus: Any,
        pressure_bus: Any,
        indicator: Callable[[tuple[int, int, int]], None] | None = None,
        network_up: Callable[[], bool] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.mqtt = mqtt
        self.climate_bus = climate_bus
        self.power_bus = power_bus
        self.pressure_bus = pressure_bus
        self.indicator = indicator
        self.network_up = network_up or (lambda: True)
        self._sleep = sleep
        self.color_mode = ColorMode.OFF

    def _show(self, mode: ColorMode) -> None:
        self.color_mode = mode
        if self.indicator is not None:
            self.indicator(mode.rgb)

    def _toggle(self) -> None:
        self._show(ColorMode.OFF if self.color_mode != ColorMode.OFF else ColorMode.BLUE)

    def collect(self) -> Telemetry:
        """Poll every sensor once."""
        _set_baud(self.climate_bus, SHTC3_BAUDRATE)
        climate1 = read_shtc3(self.climate_bus, SHTC3_ADDR_1)
        climate2 = read_shtc3(self.climate_bus, SHTC3_ADDR_2)
        _set_baud(self.power_bus, PZEM_BAUDRATE)
        power = read_pzem(self.power_bus)
        pressure = read_pressure(self.pressure_bus)
        return Telemetry(climate1=climate1, climate2=climate2, power=power, pressure=pressure)

    def send_once(self) -> str:
        """Collect a telemetry message and publish it if connected; return the message."""
        message = self.collect().to_json()
        if self.mqtt.is_connected():
            self.mqtt.publish(message)
        return message

    def check_connection(self) -> bool:
        """Service the connection and update the LED; return True when fully connected."""
        if not self.network_up():
            logger.debug("Network connection lost!")
            self._toggle()
            return False
        if self.mqtt.loop():
            if self.color_mode != ColorMode.GREEN:
                self._show(ColorMode.GREEN)
            return True
        logger.debug("MQTT connection lost!")
        if self.color_mode != ColorMode.BLUE:
            self._show(ColorMode.BLUE)
        self.mqtt.connect()
        return False

    def _start_mqtt(self) -> None:
        if self.settings.new_config:
            logger.debug("Disconnect old MQTT connection")
            self.mqtt.disconnect()
            self.settings.new_config = False
        if self.settings.has_parameters():
            self.mqtt.setup()
        else:
            self._show(ColorMode.RED)

    def run(self, cycles: int | None = None) -> None:
        """Run the report loop ``cycles`` times, or forever when None."""
        self._start_mqtt()
        done = 0
        while cycles is None or done < cycles:
            self.check_connection()
            self.send_once()
            done += 1
            if cycles is None or done < cycles:
                self._sleep(self.settings.interval)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="farmbox", description="Sensor gateway")
    parser.add_argument("--settings", default="farmbox-settings.json", help="settings file")
    parser.add_argument("--modbus-port", default="/dev/ttyUSB0", help="RS-485 port of SHTC3 and PZEM")
    parser.add_argument("--pressure-port", default="/dev/ttyUSB1", help="port of the pressure sensor")
    parser.add_argument("--server", default=THINGSBOARD_SERVER)
    parser.add_argument("--mqtt-port", type=int, default=MQTT_PORT)
    parser.add_argument("--device-id")
    parser.add_argument("--token")
    parser.add_argument("--interval")
    parser.add_argument("--configure", action="store_true", help="save the given parameters and exit")
    parser.add_argument("--cycles", type=int, help="number of report cycles (default: forever)")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point."""
    args = _parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    store = SettingsStore(args.settings)
    settings = DeviceSettings()
    store.load_parameters(settings)

    if args.device_id is not None or args.token is not None or args.interval is not None:
        apply_portal_values(
            settings,
            args.device_id if args.device_id is not None else settings.device_id,
            args.token if args.token is not None else settings.token,
            args.interval if args.interval is not None else settings.interval,
        )
        store.save_parameters(settings)
    if args.configure:
        return 0
    if not settings.has_parameters():
        print("farmbox: missing device ID or token; use --device-id and --token", file=sys.stderr)
        return 1

    with open_serial(args.modbus_port, SHTC3_BAUDRATE) as modbus_port, open_serial(
        args.pressure_port, SHTC3_BAUDRATE
    ) as pressure_port:
        climate_bus = RS485(modbus_port, SHTC3_ADDR_1)
        power_bus = RS485(modbus_port, PZEM_ADDRESS)
        pressure_bus = RS485(pressure_port, PRESSURE_ADDRESS)
        try:
            climate_bus.write_single_register(SHTC3_ADDRESS_REGISTER, SHTC3_ADDR_2)
            logger.info("Set address for 2nd SHTC3 sensor success")
        except ModbusError as exc:
            logger.info("Set address for 2nd SHTC3 sensor fail: %s", exc)

        mqtt = TelemetryClient(settings, server=args.server, port=args.mqtt_port)
        gateway = Gateway(settings, mqtt, climate_bus, power_bus, pressure_bus)
        try:
            gateway.run(args.cycles)
        except KeyboardInterrupt:
            pass
        finally:
            mqtt.disconnect()
    return 0