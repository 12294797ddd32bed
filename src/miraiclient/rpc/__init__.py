"""
rpc/ — HTTP remote calls: response envelope, invoker and session-less helpers.
"""

from miraiclient.rpc.envelope import ResponseEnvelope, parse_envelope
from miraiclient.rpc.invoker import RpcInvoker

__all__ = ["ResponseEnvelope", "RpcInvoker", "parse_envelope"]
