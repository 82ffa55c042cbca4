"""
Custom Exceptions for PalliScribe
=================================

This module defines the exception hierarchy shared by the note pipeline and
the dispatch server:

1. **Categorize Errors**: Different exception types for different problems
2. **Carry Context**: Include relevant information for debugging
3. **Enable Recovery**: Generation errors are absorbed into fallback results

Exception Hierarchy:
    PalliScribeError (base)
    ├── TranscriptionError
    ├── GenerationError
    │   ├── CompletionError
    │   └── MalformedResponseError
    ├── DatastoreError
    ├── ConfigurationError
    └── DispatchError
        ├── NotFoundError
        │   ├── UnknownToolError
        │   ├── UnknownResourceError
        │   └── UnknownPromptError
        ├── InvalidArgumentsError
        ├── ToolExecutionError
        └── ResourceReadError
"""

from typing import Optional


class PalliScribeError(Exception):
    """
    Base exception for all PalliScribe errors.

    Attributes:
        message: Human-readable error description
        details: Additional context (dict for structured responses)
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


# =============================================================================
# Transcription Errors
# =============================================================================

class TranscriptionError(PalliScribeError):
    """Raised when the speech-to-text backend fails. No retry is attempted."""

    def __init__(self, reason: str, model_name: Optional[str] = None):
        super().__init__(
            message=f"Failed to transcribe audio: {reason}",
            details={
                "reason": reason,
                "model_name": model_name
            }
        )


# =============================================================================
# Generation Errors
# =============================================================================

class GenerationError(PalliScribeError):
    """Base class for completion-backend errors."""
    pass


class CompletionError(GenerationError):
    """Raised when the completion backend cannot produce a response."""

    def __init__(self, url: str, original_error: str):
        super().__init__(
            message=f"Completion request to {url} failed: {original_error}",
            details={
                "backend_url": url,
                "original_error": original_error,
                "hint": "Make sure Ollama is running: 'ollama serve'"
            }
        )


class MalformedResponseError(GenerationError):
    """Raised when a completion arrives but is not the expected JSON shape."""

    def __init__(self, reason: str, response_preview: str = ""):
        preview = response_preview[:100] + "..." if len(response_preview) > 100 else response_preview
        super().__init__(
            message=f"Malformed completion response: {reason}",
            details={
                "reason": reason,
                "response_preview": preview
            }
        )


# =============================================================================
# Datastore Errors
# =============================================================================

class DatastoreError(PalliScribeError):
    """Raised when a datastore query or write fails."""

    def __init__(self, table: str, operation: str, reason: str):
        super().__init__(
            message=f"Datastore {operation} on '{table}' failed: {reason}",
            details={
                "table": table,
                "operation": operation,
                "reason": reason
            }
        )


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(PalliScribeError):
    """Raised when there's a configuration problem."""

    def __init__(self, setting_name: str, issue: str):
        super().__init__(
            message=f"Configuration error for '{setting_name}': {issue}",
            details={
                "setting_name": setting_name,
                "issue": issue
            }
        )


# =============================================================================
# Dispatch Errors
# =============================================================================

class DispatchError(PalliScribeError):
    """Base class for errors reported back to a dispatch-server caller."""
    pass


class NotFoundError(DispatchError):
    """Raised when a named entity (tool, resource, prompt, record) does not exist."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(
            message=f"Unknown {kind}: {name}",
            details={"kind": kind, "name": name}
        )


class UnknownToolError(NotFoundError):
    def __init__(self, name: str):
        super().__init__("tool", name)


class UnknownResourceError(NotFoundError):
    def __init__(self, uri: str):
        super().__init__("resource", uri)


class UnknownPromptError(NotFoundError):
    def __init__(self, name: str):
        super().__init__("prompt", name)


class InvalidArgumentsError(DispatchError):
    """Raised when a tool or prompt receives missing or ill-typed arguments."""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Invalid arguments for '{operation}': {reason}",
            details={"operation": operation, "reason": reason}
        )


class ToolExecutionError(DispatchError):
    """Raised when a tool handler fails; surfaced to the caller, never fatal."""

    def __init__(self, tool_name: str, reason: str):
        super().__init__(
            message=f"Tool execution failed ({tool_name}): {reason}",
            details={"tool_name": tool_name, "reason": reason}
        )


class ResourceReadError(DispatchError):
    """Raised when a resource cannot be read."""

    def __init__(self, uri: str, reason: str):
        super().__init__(
            message=f"Failed to read resource {uri}: {reason}",
            details={"uri": uri, "reason": reason}
        )
