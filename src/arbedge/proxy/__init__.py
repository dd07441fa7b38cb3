"""Path-restricted upstream proxy."""

from arbedge.proxy.upstream import ProxyPolicy, ProxyResponse, UpstreamProxy


__all__ = [
    "ProxyPolicy",
    "ProxyResponse",
    "UpstreamProxy",
]
