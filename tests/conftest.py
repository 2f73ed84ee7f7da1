"""Pytest configuration and fixtures for ecs-enum tests."""
import os

import pytest

# Test-safe environment before any module builds a config
os.environ['ENUM_SSH_USER'] = 'tester'
os.environ['AWS_REGION'] = 'us-west-2'
os.environ.setdefault('AWS_ACCESS_KEY_ID', 'testing')
os.environ.setdefault('AWS_SECRET_ACCESS_KEY', 'testing')

from enum_config import EnumConfig  # noqa: E402
from tests.mock_ssh import FakeExecutor, FakeInventory, host  # noqa: E402


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv('ENUM_CLUSTER', raising=False)
    monkeypatch.delenv('AWS_PROFILE', raising=False)


@pytest.fixture
def config():
    return EnumConfig(cluster='staging')


@pytest.fixture
def staging_hosts():
    """web-1 is running, web-2 is stopped"""
    return [
        host('web-2', '10.0.0.9', state='stopped', instance_id='i-0b2'),
        host('web-1', '10.0.0.5', instance_id='i-0a1'),
    ]


@pytest.fixture
def three_hosts():
    return [
        host('app-c', '10.0.1.3'),
        host('app-a', '10.0.1.1'),
        host('app-b', '10.0.1.2'),
    ]


@pytest.fixture
def inventory(three_hosts):
    return FakeInventory(three_hosts, clusters=['staging', 'production'])


@pytest.fixture
def executor():
    return FakeExecutor()
