"""Upstream market data, chain caching and chain analytics."""

from chaindesk_daemon.market.chain_cache import ChainCache
from chaindesk_daemon.market.query import ChainQueryEngine
from chaindesk_daemon.market.quotes import QuoteService
from chaindesk_daemon.market.upstream import UpstreamClient

__all__ = ["ChainCache", "ChainQueryEngine", "QuoteService", "UpstreamClient"]
