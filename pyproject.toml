[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ersha"
version = "0.1.0"
description = "Field-telemetry building blocks: shared data model, framed asyncio RPC, dispatcher event storage and device registries"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "telemetry",
    "iot",
    "agriculture",
    "sensors",
    "rpc",
    "asyncio",
    "ulid",
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
    "Framework :: AsyncIO",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
ersha-rpc-server = "ersha.rpc.server:main"
ersha-rpc-client = "ersha.rpc.client:main"

[tool.hatch.build.targets.wheel]
packages = ["ersha"]

[tool.pytest.ini_options]
addopts = "-ra"
