"""Tests for command line / environment configuration."""

import os
import sys
from unittest.mock import patch

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dockhand.config import CLIConfigProvider, RemoteEndpoint, build_tags, local_identity, parse_remote
from dockhand.logging_config import BlankLineFilter, get_logging_config


@pytest.mark.parametrize(
    "value,expected",
    [
        ("localhost:10002", RemoteEndpoint("localhost", 10002)),
        ("controller.example.com", RemoteEndpoint("controller.example.com", 10002)),
        ("10.0.0.5:9000", RemoteEndpoint("10.0.0.5", 9000)),
        ("s3cret@10.0.0.5:9000", RemoteEndpoint("10.0.0.5", 9000, key="s3cret")),
        (":9000", RemoteEndpoint("localhost", 9000)),
        ("[::1]:10002", RemoteEndpoint("::1", 10002)),
        ("key@[fe80::2]", RemoteEndpoint("fe80::2", 10002, key="key")),
    ],
)
def test_parse_remote(value, expected):
    assert parse_remote(value) == expected


def test_parse_remote_rejects_bad_port():
    with pytest.raises(ValueError, match="invalid port"):
        parse_remote("controller:http")


def test_remote_url():
    assert parse_remote("key@ctl:10002").url == "http://ctl:10002"


def test_tags_start_with_platform_tag():
    assert build_tags([]) == ["windows"]
    assert build_tags(["gpu", "windows", "edge"]) == ["windows", "gpu", "edge"]


def test_identity_is_hostname_derived():
    assert local_identity("build-07") == "win-build-07"


def test_cli_defaults():
    with patch.dict(os.environ, {}, clear=True):
        config = CLIConfigProvider([]).get_agent_config()

    assert config.remote == RemoteEndpoint("localhost", 10002)
    assert config.tags == ["windows"]
    assert config.debug is False
    assert config.control_port == 10002
    assert config.relay_port == 7001
    assert config.executor is None
    assert config.identity.startswith("win-")


def test_cli_arguments():
    argv = ["key@ctl:9000", "--tag", "gpu", "-t", "edge", "--debug", "--relay-port", "7100"]
    with patch.dict(os.environ, {}, clear=True):
        config = CLIConfigProvider(argv).get_agent_config()

    assert config.remote == RemoteEndpoint("ctl", 9000, key="key")
    assert config.tags == ["windows", "gpu", "edge"]
    assert config.debug is True
    assert config.relay_port == 7100


def test_environment_defaults():
    env = {"DOCKHAND_REMOTE": "ctl:9100", "DOCKHAND_TAGS": "gpu, edge", "DOCKHAND_DEBUG": "true"}
    with patch.dict(os.environ, env, clear=True):
        config = CLIConfigProvider([]).get_agent_config()

    assert config.remote == RemoteEndpoint("ctl", 9100)
    assert config.tags == ["windows", "gpu", "edge"]
    assert config.debug is True


def test_help_exits_successfully(capsys):
    with pytest.raises(SystemExit) as excinfo:
        CLIConfigProvider(["--help"]).get_agent_config()

    assert excinfo.value.code == 0
    assert "usage: dockhand" in capsys.readouterr().out


def test_bad_remote_exits_with_usage_error():
    with pytest.raises(SystemExit) as excinfo:
        CLIConfigProvider(["ctl:http"]).get_agent_config()

    assert excinfo.value.code == 2


def test_logging_config_levels():
    assert get_logging_config()["loggers"]["dockhand"]["level"] == "INFO"
    debug = get_logging_config(debug=True)
    assert debug["loggers"]["dockhand"]["level"] == "DEBUG"
    assert debug["loggers"]["dockhand.executor.output"]["level"] == "DEBUG"


def test_blank_line_filter():
    import logging

    blank = logging.LogRecord("dockhand.executor.output", logging.DEBUG, __file__, 1, "   ", None, None)
    text = logging.LogRecord("dockhand.executor.output", logging.DEBUG, __file__, 1, "{}", None, None)

    assert BlankLineFilter().filter(blank) is False
    assert BlankLineFilter().filter(text) is True


def test_ipv6_remote_renders_with_brackets():
    remote = parse_remote("[::1]:9000")

    assert remote.url == "http://[::1]:9000"
    assert str(remote) == "[::1]:9000"


def test_parse_remote_rejects_unclosed_bracket():
    with pytest.raises(ValueError, match="invalid remote address"):
        parse_remote("[::1:9000")
