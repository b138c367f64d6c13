"""
Bootstrap renderer (datapack/bootstrap.py).
"""

import ast

from datapack.bootstrap import (
    RUNTIME_MODULES,
    RUNTIME_PACKAGE,
    BootstrapRenderer,
    join_sections,
    runtime_sources,
)
from datapack.format import BEGIN_CODE_MARKER, END_CODE_MARKER


class TestRuntimeSources:

    def test_all_modules_present(self):
        names = [m.name for m in runtime_sources()]
        assert names == list(RUNTIME_MODULES)

    def test_runtime_only_needs_stdlib(self):
        for module in runtime_sources():
            tree = ast.parse(module.source)
            for node in ast.walk(tree):
                if isinstance(node, ast.ImportFrom) and node.level == 0:
                    assert node.module.split(".")[0] not in ("jinja2", "click", "yaml", "dotenv")
                if isinstance(node, ast.ImportFrom) and node.level == 1:
                    assert node.module in RUNTIME_MODULES


class TestRender:

    def test_markers_and_offset(self):
        text = BootstrapRenderer().render(1234)
        assert text.startswith(BEGIN_CODE_MARKER + "\n")
        assert text.endswith(END_CODE_MARKER + "\n")
        assert "offset=1234" in text
        assert "at_end=False" in text
        assert RUNTIME_PACKAGE in text

    def test_hook_at_end(self):
        assert "at_end=True" in BootstrapRenderer(at_end=True).render(0)

    def test_renders_valid_python(self):
        ast.parse(BootstrapRenderer().render(0))

    def test_prefix_offset_is_its_own_length(self):
        prefix, offset = BootstrapRenderer().render_prefix(
            preamble="#!/usr/bin/env python3", postamble="print('hi')\n"
        )
        assert len(prefix.encode("utf-8")) == offset
        assert f"offset={offset}" in prefix
        assert prefix.startswith("#!/usr/bin/env python3\n" + BEGIN_CODE_MARKER)
        assert prefix.endswith(END_CODE_MARKER + "\nprint('hi')\n")


class TestJoinSections:

    def test_adds_missing_newlines(self):
        assert join_sections("a", None, "b\n", "", "c") == "a\nb\nc\n"
