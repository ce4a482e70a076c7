[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "crackhash"
version = "0.1.0"
description = "Distributed MD5 hash cracking with a manager service that splits work across brute-force workers"
requires-python = ">=3.10"
keywords = ["md5", "brute-force", "distributed", "hash", "worker", "manager"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "flask",
    "requests",
    "pyyaml",
    "python-dotenv",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
crackhash-worker = "crackhash.worker_cli:main"

[tool.hatch.build.targets.wheel]
packages = ["crackhash"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
