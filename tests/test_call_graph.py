from __future__ import annotations

from pathlib import Path
from typing import Dict

from safeprune.call_graph import CallGraph, CallGraphBuilder, ResolutionKind, module_node
from safeprune.config_loader import AnalyzerConfig
from safeprune.di_rules import DIFramework
from safeprune.source_loader import SourceLoader


def _build(root: Path, config: AnalyzerConfig = None) -> CallGraph:
    config = config or AnalyzerConfig()
    config.project_root = str(root)
    modules = SourceLoader(config).load_project()
    return CallGraphBuilder(config).build(modules)


def _resolutions_of(graph: CallGraph, caller: str) -> Dict[str, ResolutionKind]:
    return {
        site.resolution.target: site.resolution.kind
        for site in graph.resolutions
        if site.caller == caller and site.resolution.target
    }


def test_imported_module_call_vs_local_receiver(make_project) -> None:
    root = make_project(
        {
            "src/app/__init__.py": "",
            "src/app/pkg.py": "def Foo():\n    return 1\n",
            "src/app/user.py": '''
                import app.pkg as pkg


                def _caller(obj):
                    pkg.Foo()
                    obj.Foo()
                    (lambda: 1)()
            ''',
        }
    )
    graph = _build(root)
    res = _resolutions_of(graph, "app.user._caller")
    assert res["app.pkg.Foo"] is ResolutionKind.RESOLVED
    assert res["app.user.obj.Foo"] is ResolutionKind.APPROXIMATED
    unresolved = [
        s for s in graph.resolutions if s.caller == "app.user._caller" and s.resolution.kind is ResolutionKind.UNRESOLVED
    ]
    assert len(unresolved) == 1

    assert {"app.pkg.Foo", "app.user.obj.Foo"} <= graph.callees("app.user._caller")
    assert "app.user._caller" in graph.callers("app.pkg.Foo")
    # both ends of every edge are nodes
    for caller, callee in graph.edges():
        assert caller in graph.nodes and callee in graph.nodes


def test_typed_receivers_and_self_calls(make_project) -> None:
    root = make_project(
        {
            "src/app/svc.py": '''
                class Repo:
                    def save(self):
                        return self._write()

                    def _write(self):
                        return 1


                def _use(repo: Repo):
                    repo.save()


                def _build():
                    r = Repo()
                    r.save()
            ''',
            "src/app/other.py": '''
                from app.svc import Repo


                def _via_import():
                    Repo.save(None)
            ''',
        }
    )
    graph = _build(root)
    assert _resolutions_of(graph, "app.svc.Repo.save")["app.svc.Repo._write"] is ResolutionKind.RESOLVED
    assert _resolutions_of(graph, "app.svc._use")["app.svc.Repo.save"] is ResolutionKind.RESOLVED
    built = _resolutions_of(graph, "app.svc._build")
    assert built["app.svc.Repo"] is ResolutionKind.RESOLVED
    assert built["app.svc.Repo.save"] is ResolutionKind.RESOLVED
    assert _resolutions_of(graph, "app.other._via_import")["app.svc.Repo.save"] is ResolutionKind.RESOLVED


def test_unbound_bare_name_is_approximated_in_module(make_project) -> None:
    root = make_project({"src/app/mod.py": "def _f():\n    mystery()\n"})
    graph = _build(root)
    assert _resolutions_of(graph, "app.mod._f") == {"app.mod.mystery": ResolutionKind.APPROXIMATED}


def test_name_based_entry_points(make_project) -> None:
    root = make_project(
        {
            "src/app/cli.py": '''
                def main():
                    pass


                def setup():
                    pass


                def public():
                    pass


                def _private():
                    def main():
                        pass


                class Thing:
                    def __init__(self):
                        pass

                    def _hidden(self):
                        pass
            ''',
        }
    )
    graph = _build(root)
    eps = graph.entry_points
    assert {"app.cli.main", "app.cli.setup", "app.cli.public", "app.cli.Thing.__init__"} <= eps
    assert "app.cli._private" not in eps
    assert "app.cli._private.main" not in eps
    assert "app.cli.Thing._hidden" not in eps
    assert eps <= graph.declared
    # module pseudo-node is a root but never a declared function
    pseudo = module_node("app.cli")
    assert pseudo in graph.roots
    assert pseudo not in graph.declared
    assert pseudo not in graph.functions_in_module("app.cli")


def test_dependency_injector_provider_marks_argument(make_project) -> None:
    root = make_project(
        {
            "src/app/wiring.py": '''
                from dependency_injector import containers, providers


                def _build_repo():
                    return object()


                def _unused():
                    return 2


                class Container(containers.DeclarativeContainer):
                    repo = providers.Factory(_build_repo)
            ''',
        }
    )
    graph = _build(root)
    assert "app.wiring._build_repo" in graph.entry_points
    assert "app.wiring._unused" not in graph.entry_points


def test_injector_invoker_marks_caller_and_arguments(make_project) -> None:
    root = make_project(
        {
            "src/app/boot.py": '''
                import injector


                def _configure(binder):
                    pass


                def _bootstrap():
                    return injector.Injector([_configure])
            ''',
            "src/app/mods.py": '''
                from injector import Module, provider


                class AppModule(Module):
                    @provider
                    def _provide_db(self) -> str:
                        return "db"
            ''',
        }
    )
    graph = _build(root)
    assert "app.boot._bootstrap" in graph.entry_points
    assert "app.boot._configure" in graph.entry_points
    assert "app.mods.AppModule._provide_db" in graph.entry_points


def test_fastapi_depends_in_default_argument(make_project) -> None:
    root = make_project(
        {
            "src/app/routes.py": '''
                from fastapi import Depends


                def _get_db():
                    return None


                def _route(db=Depends(_get_db)):
                    return db
            ''',
        }
    )
    graph = _build(root)
    assert "app.routes._get_db" in graph.entry_points


def test_fastapi_depends_inside_annotated(make_project) -> None:
    root = make_project(
        {
            "src/app/users.py": '''
                from typing import Annotated

                from fastapi import Depends


                def _get_user():
                    return None


                def _profile(user: Annotated[dict, Depends(_get_user)]):
                    return user
            ''',
        }
    )
    graph = _build(root)
    assert "app.users._get_user" in graph.entry_points


def test_custom_framework_from_config(make_project) -> None:
    root = make_project(
        {
            "src/app/custom.py": '''
                def _make():
                    return 1


                def _wire():
                    wire.Provide(_make)
            ''',
        }
    )
    config = AnalyzerConfig()
    config.di.frameworks = [
        DIFramework(name="wire", modules=["wire"], aliases=["wire"], registrations={"provider": ["Provide"]})
    ]
    graph = _build(root, config)
    assert {"app.custom._make", "app.custom._wire"} <= graph.entry_points

    # without the rule the same code registers nothing
    plain = _build(root)
    assert "app.custom._make" not in plain.entry_points


def test_callbacks_passed_as_arguments_create_edges(make_project) -> None:
    root = make_project(
        {
            "src/app/jobs.py": '''
                import threading


                def _work():
                    pass


                def _start():
                    threading.Thread(target=_work).start()
            ''',
        }
    )
    graph = _build(root)
    assert "app.jobs._work" in graph.callees("app.jobs._start")
