"""Tests for codegraph.extraction.analyzer -- files into graph nodes."""

import pytest

from codegraph.core.errors import ValidationError
from codegraph.extraction.analyzer import (
    CodebaseAnalyzer,
    contains_edge_id,
    file_node_id,
)
from codegraph.graph.codec import GraphStore
from codegraph.graph.core import GraphCore
from codegraph.graph.mutations import MutationManager

PY_FILE = "class Repo:\n    pass\n\n\ndef load():\n    return Repo()\n"
TS_FILE = "export function main(): void {}\n"


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    (root / "pkg").mkdir(parents=True)
    (root / "pkg" / "repo.py").write_text(PY_FILE, encoding="utf-8")
    (root / "web").mkdir()
    (root / "web" / "main.ts").write_text(TS_FILE, encoding="utf-8")
    (root / "README.md").write_text("# readme\n", encoding="utf-8")
    return root.resolve()


@pytest.fixture
def analyzer(mutations, project):
    return CodebaseAnalyzer(mutations, root=project)


class TestAnalyze:
    def test_creates_file_and_chunk_nodes(self, analyzer, project, mutations):
        report = analyzer.analyze(["pkg/*.py"])
        path = project / "pkg" / "repo.py"
        file_id = file_node_id(path)

        assert report.analyzed_files == 1
        assert report.entities_created == 3
        assert report.relations_created == 2
        assert report.failed_files == [] and report.skipped_files == []

        graph = mutations.graph
        assert graph.get_node(file_id) == {
            "type": "file",
            "name": str(path),
            "filePath": str(path),
            "language": "python",
        }
        chunk_id = f"code:{path}#class_definition_1_2"
        chunk = graph.get_node(chunk_id)
        assert chunk["type"] == "class_definition"
        assert chunk["identifier"] == "Repo"
        assert chunk["startLine"] == 1 and chunk["endLine"] == 2
        assert chunk["content"] == "class Repo:\n    pass"
        assert graph.get_edge(contains_edge_id(file_id, chunk_id)).type == "contains"
        assert sorted(graph.neighbors(file_id, "out")) == sorted(
            [chunk_id, f"code:{path}#function_definition_5_6"]
        )

    def test_recursive_glob(self, analyzer):
        report = analyzer.analyze(["**/*"])
        assert report.analyzed_files == 2
        assert len(report.skipped_files) == 1
        assert report.skipped_files[0].endswith("README.md")

    def test_rerun_is_idempotent(self, analyzer, mutations):
        analyzer.analyze(["**/*.py", "**/*.ts"])
        order, size = mutations.graph.order, mutations.graph.size
        report = analyzer.analyze(["**/*.py", "**/*.ts"])
        assert report.analyzed_files == 2
        assert report.entities_created == 0
        assert report.relations_created == 0
        assert (mutations.graph.order, mutations.graph.size) == (order, size)

    def test_overlapping_patterns_analyze_once(self, analyzer):
        report = analyzer.analyze(["pkg/repo.py", "**/*.py"])
        assert report.analyzed_files == 1

    def test_no_matches(self, analyzer):
        report = analyzer.analyze(["nothing/**/*.go"])
        assert report.to_dict() == {
            "analyzed_files": 0,
            "entities_created": 0,
            "relations_created": 0,
            "skipped_files": [],
            "failed_files": [],
        }

    def test_single_pattern_string(self, analyzer):
        assert analyzer.analyze("web/*.ts").analyzed_files == 1

    def test_bad_patterns(self, analyzer):
        with pytest.raises(ValidationError):
            analyzer.analyze(["", "x"])


class TestFailures:
    def test_syntax_error_is_reported_not_raised(self, analyzer, project, mutations):
        (project / "broken.py").write_text("def broken(:\n", encoding="utf-8")
        report = analyzer.analyze(["*.py", "pkg/*.py"])
        assert report.analyzed_files == 1
        assert len(report.failed_files) == 1
        assert report.failed_files[0]["path"].endswith("broken.py")
        assert not mutations.graph.has_node(file_node_id(project / "broken.py"))

    def test_undecodable_file(self, analyzer, project):
        (project / "latin.py").write_bytes(b"x = '\xff'\n")
        report = analyzer.analyze(["latin.py"])
        assert report.failed_files[0]["path"].endswith("latin.py")

    def test_oversized_file_is_skipped(self, mutations, project):
        analyzer = CodebaseAnalyzer(mutations, root=project, max_file_bytes=10)
        report = analyzer.analyze(["pkg/*.py"])
        assert report.analyzed_files == 0
        assert report.skipped_files == [str(project / "pkg" / "repo.py")]


class TestPersistence:
    def test_saves_once_per_run(self, project, graph_path, monkeypatch):
        store = GraphStore(graph_path)
        mutations = MutationManager(GraphCore(), store)
        calls = []
        original = store.save
        monkeypatch.setattr(store, "save", lambda g: (calls.append(1), original(g)))

        CodebaseAnalyzer(mutations, root=project).analyze(["**/*.py", "**/*.ts"])

        assert calls == [1]
        assert GraphStore(graph_path).load().order == mutations.graph.order
