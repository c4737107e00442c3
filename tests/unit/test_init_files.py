"""
Unit tests for package __init__ files

Ensures version attributes are defined, __all__ exports resolve and every
package imports without errors.
"""

import importlib

import pytest

PACKAGES = [
    "diffcheck",
    "diffcheck.cli",
    "diffcheck.report",
    "diffcheck.repositories",
    "diffcheck.scheduler",
    "utils",
    "utils.db_pool",
    "utils.logging",
    "utils.metrics",
    "utils.tracing",
]


class TestDiffcheckInit:
    """Test diffcheck/__init__.py"""

    def test_version_attribute_exists(self):
        import diffcheck

        assert isinstance(diffcheck.__version__, str)
        assert diffcheck.__version__ == "1.0.0"

    def test_main_module_exposes_entry_point(self):
        main_module = importlib.import_module("diffcheck.__main__")

        assert callable(main_module.main)


class TestPackageExports:
    @pytest.mark.parametrize("name", PACKAGES)
    def test_imports_without_errors(self, name):
        importlib.import_module(name)

    @pytest.mark.parametrize("name", PACKAGES)
    def test_all_entries_resolve(self, name):
        module = importlib.import_module(name)

        for attribute in getattr(module, "__all__", []):
            if not hasattr(module, attribute):
                importlib.import_module(f"{name}.{attribute}")
