"""
Arbitrage edge serving layer.

An async HTTP edge that serves arbitrage opportunities and asset safety
scores to dashboards, with a stale-while-revalidate response cache, a
token-bucket guarded upstream proxy and a parallel safety scorer.
"""

__version__ = "1.0.0"
__author__ = "Tim"
