"""Farm box sensor gateway: Modbus RS-485 sensors to MQTT telemetry."""

__version__ = "0.1.0"