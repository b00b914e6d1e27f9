"""
codegraph.extraction.analyzer -- Turn source files into graph structure.

For every file matched by the given glob patterns:

* a ``file`` node ``file:<absolute path>``;
* one node per chunk, ``code:<path>#<chunk type>_<start>_<end>``, typed
  with the tree-sitter node type (``class_declaration``, ...);
* a ``contains`` edge from the file to each chunk.

All writes go through ``MutationManager`` inside a single batch, so the
graph is saved once at the end of a run.  Re-running on unchanged files
merges into the existing nodes and creates nothing new.
"""

from __future__ import annotations

import glob
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from codegraph.core.errors import ChunkingError, GraphError, ValidationError
from codegraph.extraction.splitter import CodeChunk, CodeSplitter, language_for_path
from codegraph.graph.mutations import MutationManager

log = logging.getLogger(__name__)

FILE_TYPE = "file"
CONTAINS = "contains"


def file_node_id(path: Path) -> str:
    return f"file:{path}"


def chunk_node_id(path: Path, chunk: CodeChunk) -> str:
    return f"code:{path}#{chunk.type}_{chunk.start_line}_{chunk.end_line}"


def contains_edge_id(file_id: str, chunk_id: str) -> str:
    return f"{file_id}->{CONTAINS}->{chunk_id}"


@dataclass
class AnalysisReport:
    analyzed_files: int = 0
    entities_created: int = 0
    relations_created: int = 0
    skipped_files: List[str] = field(default_factory=list)
    failed_files: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analyzed_files": self.analyzed_files,
            "entities_created": self.entities_created,
            "relations_created": self.relations_created,
            "skipped_files": self.skipped_files,
            "failed_files": self.failed_files,
        }


class CodebaseAnalyzer:
    """Glob, chunk and record source files.

    Parameters
    ----------
    mutations : MutationManager
        Write path into the graph.
    root : Path, optional
        Base for relative glob patterns (default: current directory).
    max_file_bytes : int
        Files larger than this are skipped.
    """

    def __init__(
        self,
        mutations: MutationManager,
        root: Optional[Union[str, Path]] = None,
        max_file_bytes: int = 1_000_000,
    ) -> None:
        self.mutations = mutations
        self.root = Path(root) if root is not None else None
        self.max_file_bytes = max_file_bytes
        self._splitters: Dict[str, CodeSplitter] = {}

    def analyze(self, patterns: Sequence[str]) -> AnalysisReport:
        if isinstance(patterns, str):
            patterns = [patterns]
        if not all(isinstance(p, str) and p for p in patterns):
            raise ValidationError("patterns must be a list of non-empty glob strings")

        report = AnalysisReport()
        with self.mutations.batch():
            for path in self.expand(patterns):
                self._analyze_file(path, report)
        log.info(
            "Analyzed %d files: %d entities, %d relations created (%d skipped, %d failed)",
            report.analyzed_files,
            report.entities_created,
            report.relations_created,
            len(report.skipped_files),
            len(report.failed_files),
        )
        return report

    def expand(self, patterns: Sequence[str]) -> List[Path]:
        """Absolute, de-duplicated file paths matched by *patterns*."""
        root = (self.root or Path.cwd()).resolve()
        seen: Dict[Path, None] = {}
        for pattern in patterns:
            full = pattern if Path(pattern).is_absolute() else str(root / pattern)
            for match in sorted(glob.glob(full, recursive=True)):
                path = Path(match).resolve()
                if path.is_file():
                    seen.setdefault(path, None)
        return list(seen)

    def _analyze_file(self, path: Path, report: AnalysisReport) -> None:
        language = language_for_path(path)
        if language is None:
            log.debug("Skipping %s: unsupported extension", path)
            report.skipped_files.append(str(path))
            return
        try:
            if path.stat().st_size > self.max_file_bytes:
                log.info("Skipping %s: larger than %d bytes", path, self.max_file_bytes)
                report.skipped_files.append(str(path))
                return
            text = path.read_text(encoding="utf-8")
            chunks = self._splitter(language).split_text(text)
            created, linked = self._record(path, language, chunks)
        except (OSError, UnicodeDecodeError, ChunkingError, GraphError) as exc:
            log.warning("Failed to analyze %s: %s", path, exc)
            report.failed_files.append({"path": str(path), "error": str(exc)})
            return

        report.analyzed_files += 1
        report.entities_created += created
        report.relations_created += linked

    def _record(self, path: Path, language: str, chunks: List[CodeChunk]) -> Tuple[int, int]:
        file_id = file_node_id(path)
        entities = [
            {
                "id": file_id,
                "type": FILE_TYPE,
                "attributes": {"name": str(path), "filePath": str(path), "language": language},
            }
        ]
        for chunk in chunks:
            span = f"{path}:{chunk.start_line}-{chunk.end_line}"
            label = f"{chunk.type}:{chunk.name}" if chunk.name else chunk.type
            attrs: Dict[str, Any] = {
                "name": f"{label} ({span})",
                "filePath": str(path),
                "language": language,
                "startLine": chunk.start_line,
                "endLine": chunk.end_line,
                "content": chunk.content,
            }
            if chunk.name:
                attrs["identifier"] = chunk.name
            entities.append(
                {"id": chunk_node_id(path, chunk), "type": chunk.type, "attributes": attrs}
            )

        result = self.mutations.create_entities(entities)
        if result.errors:
            raise ValidationError("; ".join(result.errors))

        graph = self.mutations.graph
        relations: Dict[str, Dict[str, str]] = {}
        for entity in entities[1:]:
            edge_id = contains_edge_id(file_id, entity["id"])
            if not graph.has_edge(edge_id):
                relations[edge_id] = {
                    "id": edge_id, "source": file_id, "target": entity["id"], "type": CONTAINS,
                }
        linked = self.mutations.create_relations(list(relations.values())) if relations else None
        if linked is not None and linked.errors:
            raise ValidationError("; ".join(linked.errors))
        return len(result.created_ids), len(linked.created_ids) if linked else 0

    def _splitter(self, language: str) -> CodeSplitter:
        if language not in self._splitters:
            self._splitters[language] = CodeSplitter(language)
        return self._splitters[language]
