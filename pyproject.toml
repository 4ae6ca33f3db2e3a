[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ranstack"
version = "0.1.0"
description = "5G RAN building blocks: MILENAGE and 5G key derivation, NIA2 integrity, common IEs and an asyncio SCTP transaction stack"
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = ["5g", "ran", "sctp", "f1ap", "ngap", "e1ap", "milenage", "nia2", "kdf"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Telecommunications Industry",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Communications :: Telephony",
    "Topic :: Security :: Cryptography",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["ranstack"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
