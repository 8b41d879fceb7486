"""Static analysis: language backends and the analyzer façade."""

from .ast_analyzer import ASTAnalyzer, detect_language, language_for_path
from .models import (
    CallSite,
    ClassInfo,
    FunctionInfo,
    ImportInfo,
    MemberRead,
    ParameterInfo,
    Statement,
    StatementKind,
    StaticModel,
    ValueSummary,
)

__all__ = [
    "ASTAnalyzer",
    "CallSite",
    "ClassInfo",
    "FunctionInfo",
    "ImportInfo",
    "MemberRead",
    "ParameterInfo",
    "Statement",
    "StatementKind",
    "StaticModel",
    "ValueSummary",
    "detect_language",
    "language_for_path",
]
