[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tokenstate"
version = "0.0.1"
description = "Key-value state layout, balance bookkeeping and a JSON-RPC query API for a token ledger"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "token",
    "ledger",
    "state",
    "key-value",
    "json-rpc",
    "wsgi",
    "balances",
    "bech32",
]
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
    "Topic :: Database",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tokenstate"]

[tool.hatch.build.targets.sdist]
include = ["tokenstate", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
