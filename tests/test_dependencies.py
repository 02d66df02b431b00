"""Fail fast when mandatory runtime dependencies are missing."""

import importlib.util


def test_mandatory_pillow_installed() -> None:
    assert importlib.util.find_spec("PIL") is not None


def test_mandatory_yaml_installed() -> None:
    assert importlib.util.find_spec("yaml") is not None


def test_mandatory_tqdm_installed() -> None:
    assert importlib.util.find_spec("tqdm") is not None
