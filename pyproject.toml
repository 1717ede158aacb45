[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "farmbox"
version = "0.1.0"
description = "Sensor gateway for a small farm box: reads Modbus RS-485 sensors and publishes telemetry over MQTT."
requires-python = ">=3.10"
keywords = [
    "modbus",
    "rs485",
    "mqtt",
    "telemetry",
    "thingsboard",
    "pzem",
    "shtc3",
    "iot",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Environment :: Console",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Home Automation",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "pyserial>=3.5",
    "paho-mqtt",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
]

[project.scripts]
farmbox = "farmbox.app:main"

[tool.hatch.build.targets.wheel]
packages = ["farmbox"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"
