[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "graphite-ch"
version = "0.1.0"
description = "Building blocks for end-to-end tests of a Graphite backend on ClickHouse: byte caches, a fault-injecting reverse proxy, Docker and process helpers, and response comparison"
requires-python = ">=3.11"
dependencies = []
keywords = [
    "graphite",
    "clickhouse",
    "carbon",
    "e2e",
    "integration-testing",
    "docker",
    "cache",
    "reverse-proxy",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["graphite_ch"]

[tool.hatch.build.targets.sdist]
include = ["graphite_ch", "tests", "pyproject.toml", "README.md"]

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
