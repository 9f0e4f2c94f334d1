[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "netdctl"
version = "0.1.0"
description = "Network daemon control pieces: UID ranges, fwmarks, strict-mode iptables rules, tethering, soft AP configuration and a command-socket client"
requires-python = ">=3.10"
dependencies = []
keywords = ["networking", "iptables", "tethering", "hostapd", "fwmark", "uid-ranges"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
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

[project.scripts]
ndc = "netdctl.ndc:main"

[tool.hatch.build.targets.wheel]
packages = ["netdctl"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
