"""Tools package for tether."""

from .invoker import invoke
from .registry import LocalTool, Tool, ToolDescriptor, ToolRegistry
from .remote import RemoteTool, ToolServerClient, load_remote_tools

__all__ = [
    "LocalTool",
    "RemoteTool",
    "Tool",
    "ToolDescriptor",
    "ToolRegistry",
    "ToolServerClient",
    "invoke",
    "load_remote_tools",
]
