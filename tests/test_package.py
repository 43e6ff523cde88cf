"""Package-level checks."""

import importlib
import re

import edgeguard


def test_usage_imports_resolve():
    lines = re.findall(r"^\s*from (edgeguard[\w.]*) import (.+)$", edgeguard.__doc__, re.MULTILINE)
    assert lines
    for module_name, names in lines:
        module = importlib.import_module(module_name)
        for name in (n.strip() for n in names.split(",")):
            assert hasattr(module, name), f"{module_name}.{name}"
