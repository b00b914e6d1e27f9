"""
codegraph.extraction -- Source code to graph structure.

Public API:
  CodeSplitter       -- tree-sitter chunker (TypeScript, TSX, JavaScript, Python)
  language_for_path  -- file extension to chunker language
  CodebaseAnalyzer   -- glob + chunk + write file/code nodes and contains edges
"""

from codegraph.extraction.analyzer import AnalysisReport, CodebaseAnalyzer
from codegraph.extraction.splitter import CodeChunk, CodeSplitter, language_for_path

__all__ = [
    "AnalysisReport",
    "CodebaseAnalyzer",
    "CodeChunk",
    "CodeSplitter",
    "language_for_path",
]
