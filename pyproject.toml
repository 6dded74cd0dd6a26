[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "relaylb"
version = "0.1.0"
description = "Building blocks for a TCP/UDP load balancer: configuration checks, access rules, backend scheduling, bandwidth statistics, metrics and proxy helpers."
requires-python = ">=3.11"
dependencies = [
    "tomli-w",
]
keywords = [
    "load-balancer",
    "proxy",
    "tcp",
    "udp",
    "sni",
    "proxy-protocol",
    "metrics",
    "networking",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Internet :: Proxy Servers",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["relaylb"]

[tool.hatch.build.targets.sdist]
include = [
    "relaylb",
    "tests",
    "pyproject.toml",
    "README.md",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
