"""Shared fixtures for nettap tests."""

import pytest

from nettap.config import CaptureConfig
from nettap.services import CaptureService, TraceWriter

BASE = "https://panel.example.test"


@pytest.fixture
def config(tmp_path):
    return CaptureConfig(output_dir=str(tmp_path / "trace"), launch=False)


@pytest.fixture
def writer(config):
    return TraceWriter(config.output_path)


@pytest.fixture
def service(config):
    return CaptureService(config)


def trace_files(directory):
    return sorted(directory.glob("request-*.json"))
