[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dpvapi"
version = "0.1.0"
description = "Service layer for a parkour association web API: accounting, Markdown comments, users, clubs and membership requests"
requires-python = ">=3.10"
keywords = ["parkour", "association", "accounting", "markdown", "html sanitizer", "nextcloud", "smtp"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
]
dependencies = [
    "markdown-it-py",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["dpvapi"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
