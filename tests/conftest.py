"""Root test configuration."""

import logging
from unittest.mock import MagicMock

import pytest
import structlog
from idprov.providers.context import ProviderContext
from idprov.system import CommandResult
from idprov.templating import TemplateRenderer


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class FakeRunner:
    """Records commands and answers them from a table of canned results."""

    def __init__(self, results=None):
        self.results = results or {}
        self.calls = []

    def run(self, argv, *, check=True, env=None, cwd=None):
        argv = tuple(argv)
        self.calls.append(argv)
        returncode, stdout = self.results.get(argv, (0, ""))
        return CommandResult(argv=argv, returncode=returncode, stdout=stdout)

    def commands(self):
        return [" ".join(call) for call in self.calls]


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def provider_context(fake_runner, tmp_path):
    """Provider context whose capabilities never leave the test process."""
    return ProviderContext(
        runner=fake_runner,
        renderer=TemplateRenderer(tmp_path / "templates"),
        engine_factory=MagicMock(name="engine_factory"),
        keystone_client_factory=MagicMock(name="keystone_client_factory"),
        wakeup_attempts=2,
        wakeup_interval=0,
        wakeup_timeout=1,
    )
