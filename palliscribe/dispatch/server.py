"""
Dispatch Server for PalliScribe
===============================

A long-lived MCP process that exposes patient data and note creation to an
external agent over stdio.

Phases
------
1. **startup**: load settings, configure logging, require a datastore path
   (exit 1 when absent), open the datastore and build the catalogs.
2. **serving**: the MCP stdio loop. Each request is list-tools, call-tool,
   list-resources, read-resource, list-prompts or get-prompt.
3. **shutdown**: transport close exits 0; a fatal error is logged and exits 1.

Handler failures never reach the loop as raw exceptions: the Dispatcher
wraps them into ToolExecutionError / ResourceReadError naming the operation,
and the MCP SDK reports those to the caller while the loop keeps serving.

stdout carries the protocol stream, so all logging goes to stderr.
"""

import asyncio
import logging
import sys
from typing import Any, Optional

from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server

from palliscribe.config import Settings, get_settings, setup_logging
from palliscribe.datastore import DatastoreProtocol, SQLiteDatastore
from palliscribe.dispatch.catalog import (
    Catalog,
    DispatchContext,
    PromptDefinition,
    ResourceDefinition,
    ToolDefinition,
)
from palliscribe.dispatch.prompt_templates import PROMPT_DEFINITIONS
from palliscribe.dispatch.resources import RESOURCE_DEFINITIONS
from palliscribe.dispatch.tools import TOOL_DEFINITIONS
from palliscribe.entity_extractor import EntityExtractor
from palliscribe.exceptions import (
    ConfigurationError,
    PalliScribeError,
    ResourceReadError,
    ToolExecutionError,
    UnknownPromptError,
    UnknownResourceError,
    UnknownToolError,
)
from palliscribe.pipeline import DocumentationPipeline


logger = logging.getLogger(__name__)


def build_tool_catalog() -> Catalog[ToolDefinition]:
    return Catalog.build(TOOL_DEFINITIONS, key=lambda d: d.name, not_found=UnknownToolError)


def build_resource_catalog() -> Catalog[ResourceDefinition]:
    return Catalog.build(RESOURCE_DEFINITIONS, key=lambda d: d.uri, not_found=UnknownResourceError)


def build_prompt_catalog() -> Catalog[PromptDefinition]:
    return Catalog.build(PROMPT_DEFINITIONS, key=lambda d: d.name, not_found=UnknownPromptError)


class Dispatcher:
    """
    Transport-independent routing over the three catalogs.

    Holds the only state shared between requests: the catalogs and the
    service context, both fixed after construction.
    """

    def __init__(
        self,
        context: DispatchContext,
        tools: Optional[Catalog[ToolDefinition]] = None,
        resources: Optional[Catalog[ResourceDefinition]] = None,
        prompts: Optional[Catalog[PromptDefinition]] = None,
    ):
        self.context = context
        self.tools = tools if tools is not None else build_tool_catalog()
        self.resources = resources if resources is not None else build_resource_catalog()
        self.prompts = prompts if prompts is not None else build_prompt_catalog()

    def list_tools(self) -> list[ToolDefinition]:
        return list(self.tools)

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> str:
        """
        Run a tool and return its dual-format text.

        Raises:
            ToolExecutionError: for unknown names, bad arguments, datastore
                failures and any other handler failure
        """
        logger.info(f"call-tool {name}")
        try:
            tool = self.tools.get(name)
            return await tool.handler(self.context, arguments or {})
        except PalliScribeError as e:
            logger.warning(f"Tool '{name}' failed: {e.message}")
            raise ToolExecutionError(name, e.message) from e
        except Exception as e:
            logger.exception(f"Tool '{name}' raised unexpectedly")
            raise ToolExecutionError(name, f"{type(e).__name__}: {e}") from e

    def list_resources(self) -> list[ResourceDefinition]:
        return list(self.resources)

    async def read_resource(self, uri: str) -> tuple[str, str]:
        """
        Read a resource.

        Returns:
            (mime_type, text)

        Raises:
            ResourceReadError: for unknown URIs and failed queries
        """
        logger.info(f"read-resource {uri}")
        try:
            resource = self.resources.get(uri)
            return resource.mime_type, await resource.handler(self.context)
        except PalliScribeError as e:
            logger.warning(f"Resource '{uri}' failed: {e.message}")
            raise ResourceReadError(uri, e.message) from e
        except Exception as e:
            logger.exception(f"Resource '{uri}' raised unexpectedly")
            raise ResourceReadError(uri, f"{type(e).__name__}: {e}") from e

    def list_prompts(self) -> list[PromptDefinition]:
        return list(self.prompts)

    def get_prompt(self, name: str, arguments: Optional[dict[str, str]] = None) -> tuple[PromptDefinition, str]:
        """
        Render a prompt template.

        Raises:
            UnknownPromptError: for unknown names
            InvalidArgumentsError: when a required argument is missing
        """
        logger.info(f"get-prompt {name}")
        prompt = self.prompts.get(name)
        return prompt, prompt.render(arguments or {})


def create_dispatcher(
    settings: Settings,
    datastore: DatastoreProtocol,
) -> Dispatcher:
    """Wire the services the handlers use into a Dispatcher."""
    entity_extractor = EntityExtractor(settings=settings)
    pipeline = DocumentationPipeline(
        settings=settings,
        entity_extractor=entity_extractor,
        datastore=datastore,
    )
    context = DispatchContext(datastore=datastore, pipeline=pipeline, entity_extractor=entity_extractor)
    return Dispatcher(context)


def create_mcp_server(dispatcher: Dispatcher, settings: Optional[Settings] = None) -> Server:
    """Bind a Dispatcher to the MCP low-level server request handlers."""
    settings = settings or get_settings()
    server = Server(settings.server_name, version=settings.server_version)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [tool.to_mcp() for tool in dispatcher.list_tools()]

    @server.call_tool()
    async def call_tool(name: str, arguments: Optional[dict[str, Any]]) -> list[types.TextContent]:
        text = await dispatcher.call_tool(name, arguments)
        return [types.TextContent(type="text", text=text)]

    @server.list_resources()
    async def list_resources() -> list[types.Resource]:
        return [resource.to_mcp() for resource in dispatcher.list_resources()]

    @server.read_resource()
    async def read_resource(uri) -> list[ReadResourceContents]:
        mime_type, text = await dispatcher.read_resource(str(uri))
        return [ReadResourceContents(content=text, mime_type=mime_type)]

    @server.list_prompts()
    async def list_prompts() -> list[types.Prompt]:
        return [prompt.to_mcp() for prompt in dispatcher.list_prompts()]

    @server.get_prompt()
    async def get_prompt(name: str, arguments: Optional[dict[str, str]]) -> types.GetPromptResult:
        prompt, text = dispatcher.get_prompt(name, arguments)
        return types.GetPromptResult(
            description=prompt.description,
            messages=[
                types.PromptMessage(role="user", content=types.TextContent(type="text", text=text))
            ],
        )

    return server


def check_startup_configuration(settings: Settings) -> None:
    """Raises ConfigurationError when the server cannot start."""
    if not settings.database_path:
        raise ConfigurationError(
            "database_path",
            "missing datastore configuration; set PALLISCRIBE_DATABASE_PATH"
        )


async def serve(settings: Settings) -> None:
    """Open the datastore, build the catalogs and serve until the transport closes."""
    datastore = SQLiteDatastore(settings.database_path)
    await datastore.check_connection()
    await datastore.initialize()

    server = create_mcp_server(create_dispatcher(settings, datastore), settings)

    async with stdio_server() as (read_stream, write_stream):
        logger.info(f"{settings.server_name} running on stdio")
        await server.run(read_stream, write_stream, server.create_initialization_options())


def run(settings: Optional[Settings] = None) -> int:
    """Run the server through all three phases and return the exit status."""
    settings = settings or get_settings()
    setup_logging(settings)

    try:
        check_startup_configuration(settings)
    except ConfigurationError as e:
        logger.error(e.message)
        return 1

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 0
    except Exception as e:
        logger.exception(f"Server error: {e}")
        return 1

    logger.info("Transport closed, shutting down")
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
