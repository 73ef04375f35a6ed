"""
KiraPilot - Agent tool-execution and error-recovery engine

KiraPilot lets a language model drive a bounded "Thought -> Action ->
Observation -> Answer" loop over a productivity application's tools. Every
action is a permissioned call through a catalog, and every failure is
normalized into one taxonomy with retry/backoff and human-readable remediation.

Key Features:
- @tool decorator building permissioned tools from typed functions
- Tool catalog with permission checks
- Execution bridge with timeouts, validation and bounded retries
- Error handler with suggestions and remediation guidance
- Strict action-grammar parser and reasoning loop state machine

Quick Start:
    from kirapilot import (
        ToolCatalog, ExecutionBridge, ReasoningLoop, PermissionLevel,
        register_builtin_tools,
    )

    catalog = ToolCatalog()
    register_builtin_tools(catalog)

    bridge = ExecutionBridge(catalog, backend=my_backend)
    loop = ReasoningLoop(my_model, bridge, {PermissionLevel.READ_ONLY})

    result = await loop.run("What tasks do I have?")
    print(result.final_message)

Error handling on its own:
    from kirapilot import get_error_handler

    result = await get_error_handler().handle_error(RuntimeError("database is locked"))
    print(result.user_message)
"""

__version__ = "0.1.0"

# Tools
from .tools import (
    AlternativeToolSuggestion,
    DuplicateToolError,
    PermissionCheck,
    PermissionLevel,
    ResultMetadata,
    ToolCatalog,
    ToolContext,
    ToolDefinition,
    ToolExecutionResult,
    ToolInvocationRequest,
    register_builtin_tools,
    tool,
)

# Errors
from .errors import (
    ErrorHandler,
    ErrorKind,
    ErrorRecoveryContext,
    RecoveryStrategy,
    RetryMode,
    ToolExecutionError,
    get_error_handler,
    initialize_error_handler,
    normalize_error,
)

# Execution
from .tools.bridge import ExecutionBridge, ExecutionCancelled

# Formatting
from .formatter import FormattingOptions, ToolResultFormatter

# Reasoning loop
from .react import (
    ActionDirective,
    FinalAnswer,
    LoopResult,
    LoopState,
    Malformed,
    ReactLoopConfig,
    ReasoningLoop,
    TurnOutcome,
    parse_model_output,
)

# Config
from .config import ConfigError, ConfigLoader, EngineConfig

# Protocols
from .protocols import LanguageModelProtocol, ProductivityBackend, TranslationFunction

# Audit
from .audit_logger import AuditLogger

__all__ = [
    "__version__",
    # Tools
    "AlternativeToolSuggestion",
    "DuplicateToolError",
    "PermissionCheck",
    "PermissionLevel",
    "ResultMetadata",
    "ToolCatalog",
    "ToolContext",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolInvocationRequest",
    "register_builtin_tools",
    "tool",
    # Errors
    "ErrorHandler",
    "ErrorKind",
    "ErrorRecoveryContext",
    "RecoveryStrategy",
    "RetryMode",
    "ToolExecutionError",
    "get_error_handler",
    "initialize_error_handler",
    "normalize_error",
    # Execution
    "ExecutionBridge",
    "ExecutionCancelled",
    # Formatting
    "FormattingOptions",
    "ToolResultFormatter",
    # Reasoning loop
    "ActionDirective",
    "FinalAnswer",
    "LoopResult",
    "LoopState",
    "Malformed",
    "ReactLoopConfig",
    "ReasoningLoop",
    "TurnOutcome",
    "parse_model_output",
    # Config
    "ConfigError",
    "ConfigLoader",
    "EngineConfig",
    # Protocols
    "LanguageModelProtocol",
    "ProductivityBackend",
    "TranslationFunction",
    # Audit
    "AuditLogger",
]
