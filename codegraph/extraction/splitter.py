"""
codegraph.extraction.splitter -- Split source files into logical chunks.

Uses tree-sitter to parse TypeScript, TSX, JavaScript and Python and
returns one ``CodeChunk`` per top-most class / function / method /
interface / enum declaration.  Declarations nested inside a chunk are
part of that chunk's content and are not reported again.

A file whose syntax tree contains ``ERROR`` or ``MISSING`` nodes is rejected with
``ChunkingError`` rather than chunked partially.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Union

import tree_sitter as _ts

from codegraph.core.errors import ChunkingError, ValidationError

log = logging.getLogger(__name__)

_TS_CHUNK_TYPES = frozenset(
    {
        "class_declaration",
        "abstract_class_declaration",
        "function_declaration",
        "interface_declaration",
        "enum_declaration",
        "method_definition",
    }
)

CHUNK_TYPES: Dict[str, FrozenSet[str]] = {
    "typescript": _TS_CHUNK_TYPES,
    "tsx": _TS_CHUNK_TYPES,
    "javascript": frozenset(
        {
            "class_declaration",
            "function_declaration",
            "generator_function_declaration",
            "method_definition",
        }
    ),
    "python": frozenset({"class_definition", "function_definition"}),
}

EXTENSIONS = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
}

_LANGUAGES: Dict[str, Any] = {}


def language_for_path(path: Union[str, Path]) -> Optional[str]:
    """Language name for a file extension, or None if unsupported."""
    return EXTENSIONS.get(Path(path).suffix.lower())


def _get_language(lang: str) -> Any:
    """Load and cache a tree-sitter Language object."""
    if lang in _LANGUAGES:
        return _LANGUAGES[lang]

    if lang == "python":
        import tree_sitter_python as tsp

        language = _ts.Language(tsp.language())
    elif lang == "javascript":
        import tree_sitter_javascript as tsj

        language = _ts.Language(tsj.language())
    elif lang in ("typescript", "tsx"):
        import tree_sitter_typescript as tst

        ts_lang = tst.language_tsx() if lang == "tsx" else tst.language_typescript()
        language = _ts.Language(ts_lang)
    else:
        raise ValidationError(
            f"Unsupported language {lang!r}. Use one of: {', '.join(CHUNK_TYPES)}"
        )

    _LANGUAGES[lang] = language
    return language


@dataclass
class CodeChunk:
    """A labelled range of source text.  Lines are 1-indexed, inclusive."""

    type: str
    content: str
    start_line: int
    end_line: int
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.name is not None:
            data["name"] = self.name
        data.update(
            startLine=self.start_line,
            endLine=self.end_line,
            content=self.content,
        )
        return data


class CodeSplitter:
    """Chunker for one language."""

    def __init__(self, language: str = "typescript") -> None:
        if language not in CHUNK_TYPES:
            raise ValidationError(
                f"Unsupported language {language!r}. Use one of: {', '.join(CHUNK_TYPES)}"
            )
        self.language = language
        self.chunk_types = CHUNK_TYPES[language]
        self._parser = _ts.Parser(_get_language(language))

    def split_text(self, text: str) -> List[CodeChunk]:
        source = text.encode("utf-8")
        tree = self._parser.parse(source)
        root = tree.root_node
        if root is None:
            raise ChunkingError("Could not parse code: no root node")
        if root.has_error:
            raise ChunkingError("Could not parse code cleanly: tree contains error nodes")

        chunks: List[CodeChunk] = []
        stack = [root]
        while stack:
            node = stack.pop()
            chunk = self._chunk_for(node, source)
            if chunk is not None:
                chunks.append(chunk)
                continue
            # reversed so chunks come out in source order
            stack.extend(reversed(node.children))
        return chunks

    def _chunk_for(self, node: Any, source: bytes) -> Optional[CodeChunk]:
        definition = node
        if node.type == "decorated_definition":
            definition = node.child_by_field_name("definition")
            if definition is None:
                return None
        if definition.type not in self.chunk_types:
            return None

        name = _node_name(definition, source)
        if definition.type == "method_definition" and name == "constructor":
            return None

        return CodeChunk(
            type=definition.type,
            name=name,
            content=source[node.start_byte:node.end_byte].decode("utf-8", errors="replace").strip(),
            start_line=node.start_point[0] + 1,
            end_line=node.end_point[0] + 1,
        )


def _node_name(node: Any, source: bytes) -> Optional[str]:
    name_node = node.child_by_field_name("name")
    if name_node is None:
        return None
    return source[name_node.start_byte:name_node.end_byte].decode("utf-8", errors="replace")

