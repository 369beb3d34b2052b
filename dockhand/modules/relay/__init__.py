"""
Relay Module - Black Box Interface

Purpose: Stream deployment artifacts from the controller to local consumers
Interface: ArtifactRelay.start(), close(), url
Hidden: Upstream HTTP client, header passthrough, fail-fast abort
"""

from .relay import ArtifactRelay

__all__ = ["ArtifactRelay"]
