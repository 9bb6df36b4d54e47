[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "atscale"
version = "1.0.0"
description = "Level- and stream-filtered logging with hex dumps, remote session tracking, and a debug-over-I3C command-line tool"
requires-python = ">=3.10"
dependencies = []
keywords = ["debug", "jtag", "i3c", "logging", "session", "hexdump"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Debuggers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
debug-over-i3c = "atscale.i3c_debug:main"

[tool.hatch.build.targets.wheel]
packages = ["atscale"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
