"""Fixtures for CLI tests."""

import pytest
from click.testing import CliRunner

from kvstore.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner):
    """Run the CLI with ``args`` against the isolated store."""

    def _invoke(*args, input=None):
        return runner.invoke(cli, list(args), input=input, catch_exceptions=False)

    return _invoke
