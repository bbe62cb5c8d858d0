[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nfpacket"
version = "0.1.0"
description = "Build and parse netfilter netlink messages: nflog configuration and packets, conntrack events"
requires-python = ">=3.10"
dependencies = []
keywords = ["netlink", "netfilter", "nflog", "conntrack", "nfnetlink", "firewall"]
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
    "Topic :: System :: Networking :: Firewalls",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
nfpacket-monitor = "nfpacket.monitor:main"

[tool.hatch.build.targets.wheel]
packages = ["nfpacket"]

[tool.hatch.build.targets.sdist]
include = ["nfpacket", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
