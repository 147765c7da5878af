#!/usr/bin/env python3
# =============================================================================
#  tokensniff — setup.py
#
#  The version lives in tokensniff/__init__.py and the runtime requirements
#  in requirements.txt; this file reads both.
#
#  Typical use:
#      pip install -e ".[dev]"
#      python -m pytest
# =============================================================================

from __future__ import annotations

import re
from pathlib import Path

from setuptools import setup, find_packages

# ---------------------------------------------------------------------------
#  Read version from the package so we have a single source of truth.
# ---------------------------------------------------------------------------
_HERE = Path(__file__).resolve().parent


def _read_version() -> str:
    """Extract ``__version__`` from tokensniff/__init__.py."""
    init = _HERE / "tokensniff" / "__init__.py"
    text = init.read_text(encoding="utf-8")
    match = re.search(r'^__version__\s*=\s*"([^"]+)"', text, re.MULTILINE)
    if match:
        return match.group(1)
    return "0.0.0"


def _read_long_description() -> str:
    """Read README.md for the long description."""
    readme = _HERE / "README.md"
    if readme.exists():
        return readme.read_text(encoding="utf-8")
    return ""


def _read_requirements() -> list[str]:
    """Read requirements.txt if it exists."""
    req_file = _HERE / "requirements.txt"
    if req_file.exists():
        lines = req_file.read_text(encoding="utf-8").splitlines()
        return [
            ln.strip()
            for ln in lines
            if ln.strip() and not ln.strip().startswith("#")
        ]
    return []


setup(
    name="tokensniff",
    version=_read_version(),
    description=(
        "Token-stream style and security linter for PHP sources "
        "and Blade templates."
    ),
    long_description=_read_long_description(),
    long_description_content_type="text/markdown",
    license="GPL-3.0-or-later",
    author="tokensniff contributors",
    python_requires=">=3.10",
    packages=find_packages(
        include=[
            "tokensniff",
            "tokensniff.*",
        ],
        exclude=[
            "tests",
            "tests.*",
        ],
    ),
    install_requires=_read_requirements(),
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "ruff>=0.4",
            "mypy>=1.10",
        ],
    },

    # ── console entry point ────────────────────────────────────────────
    entry_points={
        "console_scripts": [
            "tokensniff=tokensniff.__main__:main",
        ],
    },

    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Software Development :: Quality Assurance",
    ],
    keywords=[
        "php",
        "blade",
        "linter",
        "static-analysis",
        "taint-analysis",
        "coding-standards",
    ],
    zip_safe=False,
)
