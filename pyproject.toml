[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mcastutils"
version = "0.1.0"
description = "IP multicast helpers: addresses, multicast sockets and socket options, interface addresses and rp_filter handling"
requires-python = ">=3.10"
keywords = ["multicast", "ipv4", "ipv6", "socket", "rp_filter", "networking"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]
dependencies = [
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["mcastutils"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
