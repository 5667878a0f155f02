[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minnowutil"
version = "0.1.0"
description = "Wire formats, sockets, an event loop and TUN adapters for a user-space TCP/IP stack"
requires-python = ">=3.10"
dependencies = []
keywords = ["tcp", "ipv4", "ethernet", "arp", "tun", "eventloop", "networking", "checksum"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["minnowutil"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
