from __future__ import annotations

import ast
from textwrap import dedent

from safeprune.complexity import annotate_complexity
from safeprune.di_patterns import DIDetector
from safeprune.node_types import FileAnalysis
from safeprune.template_patterns import TemplateDetector
from safeprune.testing_patterns import TestAnalyzer


def _tree(src: str) -> ast.Module:
    return ast.parse(dedent(src))


DI_SRC = '''
from dependency_injector import containers, providers


def build_repo():
    return object()


def create_service(name):
    return getattr(name, "service")


class Container(containers.DeclarativeContainer):
    repo = providers.Factory(build_repo)
    hook = providers.Callable(lambda: None)
'''


def test_di_detector_flags_usage_and_registrations() -> None:
    analysis = FileAnalysis(path="src/app/wiring.py")
    detector = DIDetector()
    tree = _tree(DI_SRC)
    detector.analyze(tree, analysis)

    assert analysis.has_di_usage
    assert "Imports dependency_injector framework" in analysis.reasons
    assert "Contains dependency_injector dependency injection usage" in analysis.reasons
    assert "Provides function: build_repo" in analysis.reasons
    assert "Provides anonymous function" in analysis.reasons
    assert "Defines DI module: Container" in analysis.reasons
    assert "Contains constructor function: create_service" in analysis.reasons
    assert "Uses reflection in constructor" in analysis.reasons
    assert detector.is_function_provided(tree, "build_repo")
    assert not detector.is_function_invoked(tree, "build_repo")
    assert detector.detect_patterns(tree) == ["providers.Factory", "providers.Callable"]


def test_di_detector_keeps_no_state_between_files() -> None:
    detector = DIDetector()
    detector.analyze(_tree(DI_SRC), FileAnalysis(path="src/app/wiring.py"))

    plain = _tree("def build_repo():\n    return 1\n")
    analysis = FileAnalysis(path="src/app/other.py")
    detector.analyze(plain, analysis)
    assert not analysis.has_di_usage
    assert not detector.is_function_provided(plain, "build_repo")


def test_reasons_are_recorded_once() -> None:
    src = "import pytest\n\n\ndef test_a():\n    pass\n\n\ndef test_b():\n    pass\n"
    analysis = FileAnalysis(path="tests/test_pair.py")
    TestAnalyzer().analyze(_tree(src), analysis)
    assert analysis.reasons.count("Contains test functions") == 1
    analysis.add_reason("Test file")
    assert analysis.reasons.count("Test file") == 1


def test_di_detector_ignores_unrelated_code() -> None:
    analysis = FileAnalysis(path="src/app/plain.py")
    DIDetector().analyze(_tree("import os\n\ndef helper():\n    return os.getcwd()\n"), analysis)
    assert not analysis.has_di_usage
    assert analysis.reasons == []


def test_constructor_without_reflection() -> None:
    analysis = FileAnalysis(path="src/app/factory.py")
    DIDetector().analyze(_tree("def NewClient():\n    return 1\n"), analysis)
    assert analysis.reasons == ["Contains constructor function: NewClient"]
    assert not analysis.has_di_usage


def test_template_detector() -> None:
    src = '''
    import jinja2


    class Page:
        template_dir: str = "views"

        def __init__(self):
            self.header_template = None


    def render(env):
        return env.get_template("index.html")
    '''
    analysis = FileAnalysis(path="src/app/page.py")
    detector = TemplateDetector()
    tree = _tree(src)
    detector.analyze(tree, analysis)
    assert analysis.has_templates
    assert "Imports template packages" in analysis.reasons
    assert "Contains template usage" in analysis.reasons
    assert "Contains template-related struct fields" in analysis.reasons
    assert detector.detect_patterns(tree) == ["env.get_template"]


def test_template_detector_negative() -> None:
    analysis = FileAnalysis(path="src/app/calc.py")
    TemplateDetector().analyze(_tree("def add(a, b):\n    return a + b\n"), analysis)
    assert not analysis.has_templates


def test_testing_detector_on_test_module() -> None:
    src = '''
    import pytest


    class TestThing:
        def test_ok(self):
            self.assertEqual(1, 1)
    '''
    analysis = FileAnalysis(path="tests/test_thing.py")
    detector = TestAnalyzer()
    tree = _tree(src)
    detector.analyze(tree, analysis)
    assert analysis.is_test_file
    assert analysis.has_tests
    assert analysis.reasons[0] == "Test file"
    assert "Imports testing packages" in analysis.reasons
    assert "Contains test functions" in analysis.reasons
    assert "Contains testing calls" in analysis.reasons
    assert "self.assertEqual" in detector.detect_patterns(tree)


def test_test_file_name_alone_does_not_set_has_tests() -> None:
    analysis = FileAnalysis(path="src/app/conftest.py")
    TestAnalyzer().analyze(_tree("x = 1\n"), analysis)
    assert analysis.is_test_file
    assert not analysis.has_tests


def test_complexity_notes() -> None:
    branches = "\n".join(f"    if x == {i}:\n        return {i}" for i in range(12))
    src = f"def busy(x):\n{branches}\n    return -1\n\n\ndef calm():\n    return 0\n"
    analysis = FileAnalysis(path="src/app/busy.py")
    hot = annotate_complexity(ast.parse(src), analysis, threshold=10)
    assert hot == ["busy"]
    assert analysis.complexity >= 13
    assert any(r.startswith("High complexity function: busy") for r in analysis.reasons)
