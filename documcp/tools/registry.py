"""Tool registry: descriptions, parameter docs and orchestration metadata.

The registry is built once at server start and handed to `describe_tools`,
so clients can plan workflows (token budgets, parallelism, follow-ups)
without calling the tools first.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from ..constants import CHARACTER_LIMIT, ResponseFormat, ToolCategory, ToolComplexity
from ..models import DescribeToolsInput


@dataclass(frozen=True)
class ParameterDoc:
    name: str
    type: str
    description: str
    required: bool = False
    default: Optional[str] = None


@dataclass(frozen=True)
class ToolMetadata:
    category: ToolCategory
    complexity: ToolComplexity
    estimated_tokens: int
    suggested_use: str
    typical_execution_ms: int
    returns_large_results: bool
    parallelizable: bool
    dependencies: tuple[str, ...] = ()
    common_follow_ups: tuple[str, ...] = ()


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    title: str
    description: str
    metadata: ToolMetadata
    parameters: tuple[ParameterDoc, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["metadata"]["category"] = self.metadata.category.value
        data["metadata"]["complexity"] = self.metadata.complexity.value
        return data


class ToolRegistry:
    """Declared tools, queryable by name and metadata."""

    def __init__(self, tools: Optional[List[ToolDefinition]] = None):
        self._tools: Dict[str, ToolDefinition] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def get_metadata(self, name: str) -> Optional[ToolMetadata]:
        tool = self._tools.get(name)
        return tool.metadata if tool is not None else None

    def by_category(self, category: ToolCategory) -> List[str]:
        return [name for name, tool in self._tools.items() if tool.metadata.category == category]

    def by_complexity(self, complexity: ToolComplexity) -> List[str]:
        return [name for name, tool in self._tools.items() if tool.metadata.complexity == complexity]

    def parallelizable(self) -> List[str]:
        return [name for name, tool in self._tools.items() if tool.metadata.parallelizable]

    def large_result_tools(self) -> List[str]:
        return [name for name, tool in self._tools.items() if tool.metadata.returns_large_results]

    def suggested_workflow(self, name: str) -> List[str]:
        """Dependencies, then the tool, then its common follow-ups."""
        metadata = self.get_metadata(name)
        if metadata is None:
            return []
        return [*metadata.dependencies, name, *metadata.common_follow_ups]

    def estimate_workflow_tokens(self, names: List[str]) -> int:
        total = 0
        for name in names:
            metadata = self.get_metadata(name)
            if metadata is not None:
                total += metadata.estimated_tokens
        return total

    def render_markdown(self, names: Optional[List[str]] = None) -> str:
        lines = ["# DocuMCP Tools", ""]
        for name in names if names is not None else self.names():
            tool = self._tools[name]
            meta = tool.metadata
            lines.append(f"## {tool.name}")
            lines.append(f"**{tool.title}**")
            lines.append("")
            lines.append(tool.description)
            lines.append("")
            lines.append(f"- Category: {meta.category.value}")
            lines.append(f"- Complexity: {meta.complexity.value}")
            lines.append(f"- Estimated tokens: {meta.estimated_tokens}")
            lines.append(f"- Typical execution: {meta.typical_execution_ms} ms")
            lines.append(f"- Large results: {'yes' if meta.returns_large_results else 'no'}")
            lines.append(f"- Parallelizable: {'yes' if meta.parallelizable else 'no'}")
            lines.append(f"- Suggested use: {meta.suggested_use}")
            if meta.dependencies:
                lines.append(f"- Depends on: {', '.join(meta.dependencies)}")
            if meta.common_follow_ups:
                lines.append(f"- Common follow-ups: {', '.join(meta.common_follow_ups)}")
            if tool.parameters:
                lines.append("")
                lines.append("### Parameters")
                for param in tool.parameters:
                    flag = "required" if param.required else "optional"
                    default = f", default {param.default}" if param.default is not None else ""
                    lines.append(f"- `{param.name}` ({param.type}, {flag}{default}): {param.description}")
            lines.append("")
        return "\n".join(lines)


_OPTION_PARAMETERS = (
    ParameterDoc("maxDepth", "integer", "Maximum call depth to trace", default="10"),
    ParameterDoc("maxSteps", "integer", "Maximum execution steps to simulate", default="100"),
    ParameterDoc("timeoutMs", "integer", "Timeout for simulation in milliseconds", default="30000"),
    ParameterDoc("includeCallGraph", "boolean", "Include call graph in results", default="true"),
    ParameterDoc("detectNullRefs", "boolean", "Detect potential null/undefined references", default="true"),
    ParameterDoc("detectTypeMismatches", "boolean", "Detect type mismatches", default="true"),
    ParameterDoc("detectUnreachableCode", "boolean", "Detect unreachable code", default="true"),
    ParameterDoc("confidenceThreshold", "number",
                 "Confidence below which results are flagged for manual review (0-1)", default="0.7"),
)


def create_default_registry() -> ToolRegistry:
    """Registry of the tools this server exposes."""
    return ToolRegistry([
        ToolDefinition(
            name="simulate_execution",
            title="Simulate Code Execution",
            description=(
                "Trace the execution of a documentation code example against its implementation "
                "without running it. Detects null references, type mismatches, unreachable code "
                "and missing error handling, optionally builds a call graph, and scores confidence."
            ),
            metadata=ToolMetadata(
                category=ToolCategory.VALIDATION,
                complexity=ToolComplexity.COMPLEX,
                estimated_tokens=520,
                suggested_use="Simulate code execution to validate documentation examples",
                typical_execution_ms=3000,
                returns_large_results=True,
                parallelizable=True,
            ),
            parameters=(
                ParameterDoc("exampleCode", "string", "The code example to simulate", required=True),
                ParameterDoc("implementationCode", "string", "Implementation to trace against"),
                ParameterDoc("implementationPath", "string", "Path to the implementation file"),
                ParameterDoc("entryPoint", "string", "Function to start tracing from (auto-detected)"),
                ParameterDoc("expectedBehavior", "string", "Expected behavior for validation"),
                ParameterDoc("options", "object", "Simulation options: " + ", ".join(p.name for p in _OPTION_PARAMETERS)),
                ParameterDoc("responseFormat", "string", "'json' or 'markdown'", default="json"),
            ),
        ),
        ToolDefinition(
            name="batch_simulate_execution",
            title="Batch Simulate Code Execution",
            description=(
                "Simulate several documentation examples in order and aggregate how many pass. "
                "An example passes when it simulates successfully with no error-severity issues."
            ),
            metadata=ToolMetadata(
                category=ToolCategory.VALIDATION,
                complexity=ToolComplexity.COMPLEX,
                estimated_tokens=480,
                suggested_use="Batch simulation of multiple code examples",
                typical_execution_ms=5000,
                returns_large_results=True,
                parallelizable=False,
                common_follow_ups=("simulate_execution",),
            ),
            parameters=(
                ParameterDoc("examples", "array",
                             "Examples: code, implementationCode, implementationPath, entryPoint, expectedBehavior",
                             required=True),
                ParameterDoc("globalOptions", "object", "Simulation options applied to every example"),
                ParameterDoc("responseFormat", "string", "'json' or 'markdown'", default="json"),
            ),
        ),
        ToolDefinition(
            name="describe_tools",
            title="Describe DocuMCP Tools",
            description="List the available tools with their parameters and orchestration metadata.",
            metadata=ToolMetadata(
                category=ToolCategory.UTILITY,
                complexity=ToolComplexity.SIMPLE,
                estimated_tokens=150,
                suggested_use="Discover tools and plan a workflow",
                typical_execution_ms=5,
                returns_large_results=False,
                parallelizable=True,
            ),
            parameters=(
                ParameterDoc("toolName", "string", "Describe only this tool"),
                ParameterDoc("category", "string", "Describe only tools in this category"),
                ParameterDoc("responseFormat", "string", "'json' or 'markdown'", default="markdown"),
            ),
        ),
    ])


def handle_describe_tools(params: DescribeToolsInput, registry: ToolRegistry) -> str:
    if params.tool_name:
        if params.tool_name not in registry:
            available = ", ".join(registry.names())
            return f"Error: Unknown tool '{params.tool_name}'. Available tools: {available}"
        names = [params.tool_name]
    else:
        names = registry.names()

    if params.category is not None:
        names = [name for name in names if registry.get(name).metadata.category == params.category]

    if params.response_format == ResponseFormat.JSON:
        result = {
            "tools": [registry.get(name).to_dict() for name in names],
            "parallelizable": [name for name in registry.parallelizable() if name in names],
            "largeResults": [name for name in registry.large_result_tools() if name in names],
        }
        return json.dumps(result, indent=2)

    text = registry.render_markdown(names)
    if len(text) > CHARACTER_LIMIT:
        text = text[:CHARACTER_LIMIT]
    return text
