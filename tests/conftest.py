"""Shared test fixtures."""

import os
import shutil
import tempfile

import numpy as np
import pytest
from PIL import Image

from TexForge.config import ForgeConfig
from TexForge.phases.compress import ToolResult, ToolRunner


class FakeRunner(ToolRunner):
    """Stand-in for toktx: writes a small output file instead of encoding.

    ``fail_on`` holds input basenames that should exit non-zero;
    ``no_output`` holds basenames that exit 0 without writing anything.
    """

    def __init__(self, output_size=100, fail_on=(), no_output=(), version="toktx v4.3.2"):
        self.output_size = output_size
        self.fail_on = set(fail_on)
        self.no_output = set(no_output)
        self.version = version
        self.calls = []

    def run(self, argv, timeout=None):
        argv = [str(a) for a in argv]
        self.calls.append((argv, timeout))
        if "--version" in argv:
            return ToolResult(0, stdout=self.version)
        output_path, input_path = argv[-2], argv[-1]
        name = os.path.basename(input_path)
        if name in self.fail_on:
            return ToolResult(1, stderr=f"toktx: could not encode {name}")
        if name not in self.no_output:
            with open(output_path, "wb") as f:
                f.write((b"\xabKTX 20\xbb" + b"\0" * self.output_size)[:self.output_size])
        return ToolResult(0)

    @property
    def inputs(self):
        return [argv[-1] for argv, _ in self.calls if "--version" not in argv]


@pytest.fixture
def tmp_dir():
    d = tempfile.mkdtemp()
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def default_config():
    return ForgeConfig()


@pytest.fixture
def fake_runner():
    return FakeRunner()


def save_test_png(path, width=64, height=64, channels=3):
    """Create a random test PNG image and return its pixel array."""
    arr = np.random.randint(0, 256, size=(height, width, channels), dtype=np.uint8)
    if channels == 1:
        arr = arr[:, :, 0]
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    Image.fromarray(arr).save(path)
    return arr
