[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "storyteller"
version = "0.1.0"
description = "A small web reader for long-form Nostr stories, with follow lists, profiles and article pages."
requires-python = ">=3.10"
keywords = ["nostr", "long-form", "stories", "nip-19", "nip-23", "blog", "reader", "flask"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: News/Diary",
]
dependencies = [
    "websockets",
    "httpx",
    "markdown-it-py",
    "flask",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
storyteller = "storyteller.web:main"

[tool.hatch.build.targets.wheel]
packages = ["storyteller"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
