# farmbox

A gateway for a small farm box. It polls sensors on RS-485 Modbus lines,
turns the raw register values into readings, and publishes them as JSON
telemetry over MQTT to a ThingsBoard-style broker.

Supported sensors:

- two SHTC3 temperature/humidity probes (Modbus addresses 1 and 2),
- a PZEM-004T energy meter at address 0xF8 (voltage, current, power,
  energy, frequency, power factor),
- a pressure transducer at address 1 on its own line, read as a 12-bit
  ADC value from a holding register.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Running the gateway

Installing the package provides the `farmbox` command.

First store the device ID, access token and reporting interval:

```
farmbox --device-id my-device --token token --interval 10 --configure
```

The values are written to the settings file (`farmbox-settings.json` in
the current directory unless `--settings` names another one) and the
command exits. An interval of zero or less, or one that is not a number,
falls back to the default of 10 seconds.

Then start the gateway:

```
farmbox --modbus-port /dev/ttyUSB0 --pressure-port /dev/ttyUSB1
```

On start it tries to move the second SHTC3 probe to address 2, connects
to the broker and then, every interval, services the MQTT connection,
reads all sensors and publishes the telemetry message to
`v1/devices/me/telemetry` when connected. If no device ID or token is
stored, it prints an error and exits with status 1.

Options:

| Option | Meaning |
| --- | --- |
| `--settings PATH` | settings file (default `farmbox-settings.json`) |
| `--modbus-port PORT` | RS-485 port shared by the SHTC3 probes and the PZEM meter (default `/dev/ttyUSB0`) |
| `--pressure-port PORT` | port of the pressure sensor (default `/dev/ttyUSB1`) |
| `--server HOST` | MQTT broker (default `thingsboard.cloud`) |
| `--mqtt-port N` | broker port (default 1883) |
| `--device-id ID` | device ID, saved to the settings file |
| `--token TOKEN` | access token, used as MQTT user name; saved to the settings file |
| `--interval SECONDS` | reporting interval, saved to the settings file |
| `--configure` | save the given parameters and exit |
| `--cycles N` | run N report cycles and stop (default: run until interrupted) |
| `--verbose` | debug logging |

Ports may be device names or any URL that pyserial's `serial_for_url`
accepts.

## Using the library

### Modbus CRC (`farmbox.crc`)

```python
from farmbox.crc import modbus_crc, append_crc, check_crc

request = bytes([0x01, 0x03, 0x00, 0x00, 0x00, 0x01])
print(hex(modbus_crc(request)))   # 0xa84
frame = append_crc(request)        # 0x84 0x0a appended, low byte first
print(check_crc(frame))            # True
```

### Modbus frames and the bus (`farmbox.rs485`)

- `build_read_request(address, function, register, count)` builds a read
  request (functions 0x03 and 0x04, 1 to 125 registers),
- `build_write_single_request(address, register, value)` builds a 0x06
  frame,
- `build_write_multiple_request(address, register, values)` builds a 0x10
  frame (1 to 123 values),
- `parse_read_response(frame, count)` returns the register values of a
  read response.

Out-of-range arguments raise `ValueError`.

`RS485(port, address)` performs whole exchanges over any object with
`write`, `read` and `reset_input_buffer`, such as a port returned by
`open_serial(port_name, baudrate)`:

```python
from farmbox.rs485 import RS485, open_serial

with open_serial("/dev/ttyUSB0", 4800) as port:
    bus = RS485(port, address=1)
    values = bus.read_holding_registers(0x0000, 2)
    bus.write_single_register(0x07D0, 2)
```

Failures raise `ModbusError`: `ModbusTimeoutError` when the answer is
incomplete within the timeout, `ModbusCRCError` when its checksum is wrong.

### Readings (`farmbox.sensors`)

- `decode_shtc3(registers)` gives a `ClimateReading` (humidity and signed
  temperature, both in tenths),
- `decode_pzem(registers)` gives a `PowerReading`,
- `decode_pressure(raw)` converts a raw ADC count into pressure.

`read_shtc3(bus, address)`, `read_pzem(bus)` and `read_pressure(bus)` poll
a bus directly; a failed read gives zeros (pressure: -1.0). A `Telemetry`
object collects everything, and `Telemetry.to_json()` produces the message
published over MQTT, with the keys `Temp`, `Hum`, `Temp2`, `Hum2`, `Volt`,
`Ampe`, `Power`, `Energy`, `Freq`, `Power Factor` and `Pressure`.

### Settings (`farmbox.settings`)

`DeviceSettings` holds device ID, token, interval, WiFi network name and
passphrase. `SettingsStore(path)` keeps them in a JSON file
(`load_parameters`, `save_parameters`, `load_credentials`,
`save_credentials`). `apply_portal_values(settings, device_id, token,
interval)` applies new values and marks the settings as a new configuration
when the ID or token changed.

### MQTT (`farmbox.mqtt`)

`TelemetryClient(settings)` connects to the broker with the device ID as
client ID and the token as user name, subscribes to
`v1/devices/me/attributes` and publishes retained telemetry. An incoming
message `{"ping": "mohub"}` is answered with `{"ping": "success"}`.

### Gateway and button (`farmbox.app`)

`Gateway` ties the buses, the MQTT client and a status indicator together:
`collect()`, `send_once()`, `check_connection()` and `run(cycles)`. The
status is a `ColorMode` (red: no parameters, blue: MQTT down, green:
connected, blinking: network down) passed as an RGB tuple to an optional
`indicator` callable.

`ButtonMonitor.update(pressed, now)` interprets a configuration button:
holding it for three seconds reports `"hold"`, and three presses in quick
succession report `"triple_press"` and switch its `work_mode` to
`WorkMode.AUTO`.

## What it does not do

- It does not join or manage WiFi networks and has no configuration
  portal; parameters are set with command-line options. WiFi credentials
  can be stored in the settings file but nothing uses them to connect.
- The `farmbox` command drives no LED and reads no button: `Gateway` only
  calls an indicator you supply, and `ButtonMonitor` only interprets states
  you feed it.
- The command assumes the network is up; pass `network_up` to `Gateway` to
  check it yourself.