"""
Dispatch catalogs.

Each tool, resource and prompt template is one definition object carrying
its own handler. A Catalog is a name-keyed, read-only lookup built once at
startup; routing is a single lookup instead of a conditional chain.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Generic, Iterable, Iterator, Optional, TypeVar

from mcp import types

from palliscribe.datastore import DatastoreProtocol
from palliscribe.entity_extractor import EntityExtractor
from palliscribe.pipeline import DocumentationPipeline


@dataclass
class DispatchContext:
    """Services a handler may use. Built once at startup and shared by every request."""
    datastore: DatastoreProtocol
    pipeline: DocumentationPipeline
    entity_extractor: EntityExtractor


ToolHandler = Callable[[DispatchContext, dict[str, Any]], Awaitable[str]]
ResourceHandler = Callable[[DispatchContext], Awaitable[str]]
PromptRenderer = Callable[[dict[str, str]], str]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler

    def to_mcp(self) -> types.Tool:
        return types.Tool(name=self.name, description=self.description, inputSchema=self.input_schema)


@dataclass(frozen=True)
class ResourceDefinition:
    uri: str
    name: str
    description: str
    mime_type: str
    handler: ResourceHandler

    def to_mcp(self) -> types.Resource:
        return types.Resource(
            uri=self.uri,
            name=self.name,
            description=self.description,
            mimeType=self.mime_type,
        )


@dataclass(frozen=True)
class PromptArgumentSpec:
    name: str
    description: str
    required: bool = True


@dataclass(frozen=True)
class PromptDefinition:
    name: str
    description: str
    arguments: tuple[PromptArgumentSpec, ...]
    render: PromptRenderer

    @property
    def required_arguments(self) -> list[str]:
        return [argument.name for argument in self.arguments if argument.required]

    def to_mcp(self) -> types.Prompt:
        return types.Prompt(
            name=self.name,
            description=self.description,
            arguments=[
                types.PromptArgument(
                    name=argument.name,
                    description=argument.description,
                    required=argument.required,
                )
                for argument in self.arguments
            ],
        )


T = TypeVar("T")


@dataclass(frozen=True)
class Catalog(Generic[T]):
    """
    Immutable name → definition lookup.

    `get` raises the catalog's NotFoundError subclass for unknown names.
    Iteration preserves registration order, which is the order clients see
    when listing.
    """
    entries: "MappingProxyType[str, T]"
    not_found: type

    @classmethod
    def build(
        cls,
        definitions: Iterable[T],
        key: Callable[[T], str],
        not_found: type,
    ) -> "Catalog[T]":
        entries: dict[str, T] = {}
        for definition in definitions:
            name = key(definition)
            if name in entries:
                raise ValueError(f"Duplicate catalog entry: {name}")
            entries[name] = definition
        return cls(entries=MappingProxyType(entries), not_found=not_found)

    def get(self, name: str) -> T:
        definition: Optional[T] = self.entries.get(name)
        if definition is None:
            raise self.not_found(name)
        return definition

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def __iter__(self) -> Iterator[T]:
        return iter(self.entries.values())

    def __len__(self) -> int:
        return len(self.entries)
