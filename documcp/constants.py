"""Constants and enumerations shared across DocuMCP."""

from enum import Enum

CHARACTER_LIMIT = 25000  # Maximum response size in characters

CONFIG_FILENAME = ".documcp.yml"

# Simulation defaults
DEFAULT_MAX_DEPTH = 10
DEFAULT_MAX_STEPS = 100
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_CONFIDENCE_THRESHOLD = 0.7

# Confidence penalties
STATIC_FALLBACK_PENALTY = 0.3
UNRESOLVED_CALL_PENALTY = 0.1
AMBIGUOUS_BRANCH_PENALTY = 0.05
DYNAMIC_DISPATCH_PENALTY = 0.05
SELF_SIMULATION_PENALTY = 0.1
PARTIAL_PARSE_PENALTY = 0.2
MIN_CONFIDENCE = 0.05

HIGH_CONFIDENCE = 0.8
MODERATE_CONFIDENCE = 0.5


class ResponseFormat(str, Enum):
    """Output format for tool responses."""
    MARKDOWN = "markdown"
    JSON = "json"


class Language(str, Enum):
    """Source languages understood by the analyzer."""
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"


LANGUAGE_EXTENSIONS = {
    ".py": Language.PYTHON,
    ".js": Language.JAVASCRIPT,
    ".jsx": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT,
    ".cjs": Language.JAVASCRIPT,
    ".ts": Language.TYPESCRIPT,
    ".tsx": Language.TYPESCRIPT,
}


class Severity(str, Enum):
    """Severity of a potential issue."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueType(str, Enum):
    """Categories of issues detected during simulation."""
    NULL_REFERENCE = "null-reference"
    TYPE_MISMATCH = "type-mismatch"
    UNDEFINED_VARIABLE = "undefined-variable"
    UNREACHABLE_CODE = "unreachable-code"
    INFINITE_LOOP = "infinite-loop"
    MISSING_ERROR_HANDLING = "missing-error-handling"
    DEPRECATED_API = "deprecated-api"
    OTHER = "other"


class StepKind(str, Enum):
    """Kind of operation an execution step models."""
    CALL = "call"
    ASSIGNMENT = "assignment"
    BRANCH = "branch"
    LOOP = "loop"
    RETURN = "return"
    THROW = "throw"
    TRY = "try"
    CATCH = "catch"
    IMPORT = "import"
    BREAK = "break"
    CONTINUE = "continue"
    STATEMENT = "statement"
    UNREACHABLE = "unreachable"


class ToolCategory(str, Enum):
    """Tool category for logical grouping."""
    ANALYSIS = "analysis"
    VALIDATION = "validation"
    UTILITY = "utility"


class ToolComplexity(str, Enum):
    """Complexity level for orchestration planning."""
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class LLMProvider(str, Enum):
    """OpenAI-compatible LLM providers."""
    DEEPSEEK = "deepseek"
    OPENAI = "openai"
    OLLAMA = "ollama"


DEFAULT_PROVIDER_URLS = {
    LLMProvider.DEEPSEEK: "https://api.deepseek.com/v1",
    LLMProvider.OPENAI: None,
    LLMProvider.OLLAMA: "http://localhost:11434/v1",
}

DEFAULT_PROVIDER_MODELS = {
    LLMProvider.DEEPSEEK: "deepseek-chat",
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.OLLAMA: "llama3.1",
}

# Names that resolve without a declaration in the analyzed sources
JAVASCRIPT_GLOBALS = frozenset({
    "Array", "ArrayBuffer", "BigInt", "Boolean", "Buffer", "DataView", "Date",
    "Error", "EvalError", "Function", "Infinity", "Intl", "JSON", "Map", "Math",
    "NaN", "Number", "Object", "Promise", "Proxy", "RangeError",
    "ReferenceError", "Reflect", "RegExp", "Set", "String", "Symbol",
    "SyntaxError", "TypeError", "URL", "URLSearchParams", "WeakMap", "WeakSet",
    "arguments", "atob", "btoa", "clearInterval", "clearTimeout", "console",
    "decodeURIComponent", "document", "encodeURIComponent", "exports",
    "fetch", "globalThis", "isFinite", "isNaN", "module", "parseFloat",
    "parseInt", "process", "queueMicrotask", "require", "setImmediate",
    "setInterval", "setTimeout", "structuredClone", "super", "this",
    "undefined", "window", "__dirname", "__filename",
})

PYTHON_EXTRA_GLOBALS = frozenset({
    "__name__", "__file__", "__doc__", "__package__", "__spec__",
})
