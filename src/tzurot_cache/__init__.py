"""tzurot-cache: config resolution and cross-process cache invalidation.

Resolvers compute effective per-user/personality/channel settings from
layered database overrides and keep the results in short-lived
in-process caches. Writers publish typed invalidation events over Redis
Pub/Sub so every process evicts stale entries.
"""

__version__ = "0.1.0"
