"""
dispatch/ — Plugin registry, subscriber lists and the dispatch chain.
"""

from miraiclient.dispatch.chain import DispatchChain
from miraiclient.dispatch.plugins import Plugin, PluginRegistry
from miraiclient.dispatch.subscribers import SubscriberRegistry

__all__ = ["DispatchChain", "Plugin", "PluginRegistry", "SubscriberRegistry"]
