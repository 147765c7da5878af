# tests/conftest.py
"""
Shared fixtures: tokenize a snippet and run one check over it through the
real dispatcher, the same path the runner takes.
"""

import os
import sys

import pytest

# Ensure tokensniff package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from tokensniff.checkers import Check, Dispatcher
from tokensniff.tokenizer import tokenize


@pytest.fixture
def lint():
    """``lint(check, source, path="test.php")`` → findings of that one check."""
    def _lint(check, source, path="test.php"):
        if isinstance(check, type) and issubclass(check, Check):
            check = check()
        return Dispatcher([check]).run(tokenize(source, path=path))
    return _lint


@pytest.fixture
def codes():
    """``codes(findings)`` → the unqualified codes, in report order."""
    def _codes(findings):
        return [f.code.rsplit(".", 1)[-1] for f in findings]
    return _codes
