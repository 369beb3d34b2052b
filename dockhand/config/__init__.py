from .provider import (
    AgentConfig,
    CLIConfigProvider,
    ConfigProvider,
    RemoteEndpoint,
    build_tags,
    local_identity,
    parse_remote,
)

__all__ = [
    "AgentConfig",
    "CLIConfigProvider",
    "ConfigProvider",
    "RemoteEndpoint",
    "build_tags",
    "local_identity",
    "parse_remote",
]
