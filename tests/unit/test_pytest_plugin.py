"""Tests for the pytest fixture helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from pgtmp.config import InstanceOptions
from pgtmp.errors import TeardownError
from pgtmp.pytest_plugin import close_for_test, start_for_test


class TestStartForTest:
    def test_provisioning_error_fails_test(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        options = InstanceOptions(dir_path=blocker / "sub")

        with patch("pgtmp.instance.find_bin_dir", return_value=None):
            with pytest.raises(pytest.fail.Exception, match="creating data directory"):
                start_for_test(options)

    def test_returns_instance(self):
        instance = MagicMock()
        with patch("pgtmp.pytest_plugin.new_instance", return_value=instance):
            assert start_for_test(InstanceOptions()) is instance


class TestCloseForTest:
    def test_teardown_error_is_logged(self, caplog):
        instance = MagicMock()
        instance.close.side_effect = TeardownError("stop failed")

        with caplog.at_level(logging.WARNING, logger="pgtmp.pytest_plugin"):
            close_for_test(instance)

        assert "stop failed" in caplog.text
