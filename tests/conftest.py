# pylint: disable=missing-docstring,redefined-outer-name
import os
import signal

import pytest
from fakes import FakeDatabase
from pymongo import MongoClient

from shardchurn.shutdown import StopFlag


def pytest_addoption(parser):
    """Add custom command-line options to pytest."""
    parser.addoption("--uri", help="MongoDB URI of a mongos (or replica set) to churn against")
    parser.addoption("--runslow", action="store_true", default=False, help="run slow tests")


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: mark test as slow")


def pytest_collection_modifyitems(config, items):
    """This allows users to control whether slow tests are included in the test run.

    If the `--runslow` option is not provided, tests marked with the "slow" keyword
    will be skipped with a message indicating the need for the `--runslow` option.
    """
    if not config.getoption("--runslow"):
        skip_slow = pytest.mark.skip(reason="need --runslow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


def mongodb_uri(request: pytest.FixtureRequest):
    """Provide the MongoDB URI of the cluster under test."""
    return request.config.getoption("--uri") or os.environ.get("TEST_MONGODB_URI")


@pytest.fixture(scope="session")
def conn(request: pytest.FixtureRequest):
    """Provide a MongoClient connection to the cluster under test."""
    uri = mongodb_uri(request)
    if not uri:
        pytest.skip("need --uri or TEST_MONGODB_URI")

    with MongoClient(uri) as conn:
        yield conn


@pytest.fixture
def stop():
    return StopFlag()


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def restore_sigusr2():
    previous = signal.getsignal(signal.SIGUSR2)
    yield
    signal.signal(signal.SIGUSR2, previous)
