[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pjbus"
version = "0.1.0"
description = "Data link strategies for a multi-master bus network protocol: serial, analog sampling, UDP and TCP transports"
requires-python = ">=3.10"
keywords = ["bus", "network", "protocol", "serial", "rs485", "udp", "tcp", "data-link"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Communications",
]
dependencies = [
    "pyserial",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["pjbus"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
