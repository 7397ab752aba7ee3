"""
safeprune - dead-code reachability and deletion-safety scoring for Python projects

Simple API:

    from safeprune import analyze_project

    results = analyze_project("my_project", target_dir="src")
    for fa in results.files:
        print(fa.path, fa.safety_level, fa.safety_score)
"""


def analyze_project(*args, **kwargs):
    """Lazy import wrapper for analyze_project to avoid heavy imports at package import time."""
    from .analyzer import analyze_project as _analyze_project

    return _analyze_project(*args, **kwargs)


from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("safeprune")
except PackageNotFoundError:
    # Fallback for development/uninstalled package
    __version__ = "unknown"

__all__ = ["analyze_project", "__version__"]
