[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "veilproxy"
version = "0.1.0"
description = "Proxy building blocks: request routing by domain lists and geo data, per-user traffic accounting and TCP socket options"
requires-python = ">=3.10"
keywords = ["proxy", "router", "geoip", "geosite", "traffic", "rate-limit", "authentication"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Networking",
]
dependencies = [
    "pymysql",
    "redis",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["veilproxy"]

[tool.pytest.ini_options]
addopts = "-ra"
