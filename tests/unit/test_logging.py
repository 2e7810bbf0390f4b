"""Tests for logging helpers."""
import logging

import pytest

import blobwire
from blobwire.core.logging import PACKAGE_LOGGERS, get_logger, resolve_level


class TestResolveLevel:
    """Test suite for resolve_level."""

    @pytest.mark.parametrize('value,expected', [
        (logging.DEBUG, logging.DEBUG),
        ('debug', logging.DEBUG),
        ('INFO', logging.INFO),
        ('warn', logging.WARNING),
        ('error', logging.ERROR),
    ])
    def test_names_and_numbers(self, value, expected):
        """Test accepted inputs."""
        assert resolve_level(value) == expected

    def test_unknown(self):
        """Test unknown level names."""
        with pytest.raises(ValueError):
            resolve_level('chatty')


class TestSetupLogging:
    """Test suite for setup_logging."""

    def test_sets_every_package_logger(self):
        """Test all package loggers get the level."""
        blobwire.setup_logging('debug')

        for name in PACKAGE_LOGGERS:
            logger = logging.getLogger(name)
            assert logger.level == logging.DEBUG
            assert logger.propagate is True

        blobwire.setup_logging(logging.WARNING)
        assert logging.getLogger('blobwire.upload.bulk').level == logging.WARNING

    def test_get_logger_propagates(self):
        """Test loggers inherit from the root logger."""
        logger = get_logger('blobwire.cache')

        assert logger.name == 'blobwire.cache'
        assert logger.propagate is True
