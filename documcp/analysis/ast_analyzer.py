"""Static analyzer façade over the Python and tree-sitter backends."""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import re
from pathlib import Path

from tree_sitter import Parser

from ..constants import LANGUAGE_EXTENSIONS, Language
from ..core.errors import AnalysisError
from .js_parser import create_parser, parse_javascript
from .models import StaticModel
from .python_parser import parse_python

logger = logging.getLogger(__name__)

# Attempts at shrinking a broken Python source to a parseable prefix
MAX_PREFIX_ATTEMPTS = 25

_PYTHON_MARKERS = [
    re.compile(r"^\s*def \w+\s*\(.*\)\s*(->\s*[^:]+)?:\s*$", re.MULTILINE),
    re.compile(r"^\s*class \w+(\(.*\))?:\s*$", re.MULTILINE),
    re.compile(r"^\s*(from [\w.]+ )?import [\w., ]+$", re.MULTILINE),
    re.compile(r"^\s*(if|elif|while|for|with|try|except|else)\b.*:\s*$", re.MULTILINE),
    re.compile(r"\b(None|True|False|self)\b"),
    re.compile(r"^\s*print\(", re.MULTILINE),
]

_JAVASCRIPT_MARKERS = [
    re.compile(r"\b(const|let|var)\s+\w+"),
    re.compile(r"\bfunction\b"),
    re.compile(r"=>"),
    re.compile(r";\s*$", re.MULTILINE),
    re.compile(r"===|!=="),
    re.compile(r"\bconsole\."),
    re.compile(r"\b(require|module\.exports)\b"),
    re.compile(r"^\s*(import .* from|export )", re.MULTILINE),
]

_TYPESCRIPT_MARKERS = [
    re.compile(r"\binterface\s+\w+"),
    re.compile(r"\btype\s+\w+\s*="),
    re.compile(r"[\w)]\??\s*:\s*(string|number|boolean|void|any|unknown|never)\b"),
    re.compile(r"\):\s*[\w<>\[\]|]+\s*(\{|=>)"),
    re.compile(r"\bas const\b"),
    re.compile(r"\b(public|private|protected|readonly)\s+\w+"),
]


def _score(markers: list[re.Pattern], text: str) -> int:
    return sum(1 for marker in markers if marker.search(text))


def detect_language(source: str) -> Language:
    """Guess the language of an unlabeled snippet."""
    python_score = _score(_PYTHON_MARKERS, source)
    js_score = _score(_JAVASCRIPT_MARKERS, source)

    if python_score > js_score:
        return Language.PYTHON
    if python_score == js_score:
        try:
            compile(source, "<snippet>", "exec", flags=0, dont_inherit=True)
            return Language.PYTHON
        except (SyntaxError, ValueError):
            pass
    if _score(_TYPESCRIPT_MARKERS, source) > 0:
        return Language.TYPESCRIPT
    return Language.JAVASCRIPT


def language_for_path(path: str | Path) -> Language | None:
    return LANGUAGE_EXTENSIONS.get(Path(path).suffix.lower())


class ASTAnalyzer:
    """Builds `StaticModel`s from files or snippets.

    `initialize()` loads the tree-sitter grammars once; calling it again is a
    no-op. The analyze methods initialize lazily.
    """

    def __init__(self):
        self._parsers: dict[str, Parser] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        if self._initialized:
            return
        self._parsers = {
            "javascript": create_parser(Language.JAVASCRIPT),
            "typescript": create_parser(Language.TYPESCRIPT),
            "tsx": create_parser(Language.TYPESCRIPT, tsx=True),
        }
        self._initialized = True
        logger.debug("Loaded tree-sitter grammars: %s", ", ".join(self._parsers))

    def analyze_file(self, path: str | Path) -> StaticModel | None:
        """Analyze a source file.

        Returns:
            The model, or None when the extension is not supported

        Raises:
            AnalysisError: if the file cannot be read or parsed at all
        """
        file_path = Path(path)
        language = language_for_path(file_path)
        if language is None:
            logger.debug("Unsupported file type for analysis: %s", file_path)
            return None

        try:
            source = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise AnalysisError(f"Cannot read source file: {e}", path=str(file_path)) from e

        return self._analyze(source, language, str(file_path), tsx=file_path.suffix.lower() == ".tsx")

    def analyze_source(self, source: str, language: Language | str | None = None,
                       file_path: str = "<snippet>") -> StaticModel:
        """Analyze an in-memory snippet, detecting its language when not given."""
        if language is None:
            language = detect_language(source)
        return self._analyze(source, Language(language), file_path)

    def _analyze(self, source: str, language: Language, file_path: str, tsx: bool = False) -> StaticModel:
        self.initialize()
        if language == Language.PYTHON:
            model = self._analyze_python(source, file_path)
        else:
            key = "tsx" if tsx else language.value
            model = parse_javascript(source, file_path, self._parsers[key], language)
            if model.partial and not model.statements and source.strip():
                raise AnalysisError(
                    f"Could not parse {language.value} source: {'; '.join(model.parse_errors[:3])}",
                    path=file_path,
                )

        if model.partial:
            logger.info("Partial parse of %s: %s", file_path, "; ".join(model.parse_errors[:3]))
        digest = hashlib.sha256(source.encode("utf-8")).hexdigest()
        return dataclasses.replace(model, content_hash=digest)

    def _analyze_python(self, source: str, file_path: str) -> StaticModel:
        try:
            return parse_python(source, file_path)
        except SyntaxError as e:
            error = f"line {e.lineno}: {e.msg}"
            failed_line = e.lineno or 1

        lines = source.splitlines()
        cut = min(max(failed_line - 1, 0), len(lines))
        for _ in range(MAX_PREFIX_ATTEMPTS):
            if cut <= 0:
                break
            prefix = "\n".join(lines[:cut])
            try:
                return parse_python(prefix, file_path, partial=True, parse_errors=(error,))
            except SyntaxError as retry:
                next_cut = min((retry.lineno or cut) - 1, cut - 1)
                cut = max(next_cut, 0)

        raise AnalysisError(f"Could not parse python source: {error}", path=file_path)
