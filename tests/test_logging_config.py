"""Tests for log level resolution and transport logger levels."""

import dataclasses
import logging

import pytest

from kira_memory.utils.config import load_config
from kira_memory.utils.logging_config import LOG_FORMAT, QUIET_LOGGERS, get_logger, resolve_level, setup_logging


@pytest.fixture
def restore_levels():
    names = QUIET_LOGGERS + ('kira_memory.test',)
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


class TestLevels:

    @pytest.mark.parametrize('name, expected', [('debug', logging.DEBUG), (' Warning ', logging.WARNING), ('ERROR', logging.ERROR)])
    def test_known_names(self, name, expected):
        assert resolve_level(name) == expected

    def test_unknown_name_falls_back_to_info(self):
        assert resolve_level('verbose') == logging.INFO

    def test_get_logger_uses_configured_level(self, restore_levels):
        config = dataclasses.replace(load_config(), log_level='error')

        assert get_logger('kira_memory.test', config).level == logging.ERROR


class TestSetup:

    def test_transport_loggers_held_at_warning(self, restore_levels):
        setup_logging(dataclasses.replace(load_config(), log_level='DEBUG'))

        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_transport_loggers_follow_stricter_level(self, restore_levels):
        setup_logging(dataclasses.replace(load_config(), log_level='ERROR'))

        assert logging.getLogger('botocore').level == logging.ERROR

    def test_format_names_the_thread(self):
        assert '%(threadName)s' in LOG_FORMAT
