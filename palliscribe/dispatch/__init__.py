"""
Dispatch Server
===============

MCP server exposing patient data, documentation tools, resources and prompt
templates to an external agent:
- catalog: tool/resource/prompt definitions and name-keyed lookups
- tools, resources, prompt_templates: the catalog entries
- server: routing, MCP binding and the process entry point
"""

from palliscribe.dispatch.server import Dispatcher, create_dispatcher, create_mcp_server, main, run

__all__ = [
    'Dispatcher',
    'create_dispatcher',
    'create_mcp_server',
    'main',
    'run',
]
