"""
Archive Writer (datapack/writer.py).

Tests layout, byte-exact serialization, determinism and name policy.
"""

import pytest

from datapack.faults import DuplicateResourceNameFault, EmptyInputFault, InvalidResourceNameFault
from datapack.format import count_lines
from datapack.writer import ArchiveWriter, PackedEntry, build_archive, validate_name


# ============================================================================
# Layout
# ============================================================================

class TestLayout:

    def test_two_entries_sorted_with_line_offsets(self):
        writer = ArchiveWriter().add("B.pkg", "x\n").add("A.pkg", "line1\nline2\n")
        layout = writer.layout()
        assert [e.name for e in layout] == ["A.pkg", "B.pkg"]
        assert layout[0].order == 0
        assert layout[0].line_offset == 0
        assert layout[1].order == 1
        assert layout[1].line_offset == 2

    def test_line_offset_is_sum_of_previous_counts(self):
        contents = {"c.py": "1\n2\n3\n", "a.py": "x", "b.py": "", "d.py": "p\r\nq\r\n"}
        layout = ArchiveWriter().add_many(contents).layout()
        running = 0
        for entry in layout:
            assert entry.line_offset == running
            assert entry.line_count == count_lines(contents[entry.name].encode())
            running += entry.line_count

    def test_length_is_stored_byte_length(self):
        layout = ArchiveWriter().add("m.py", "é = 1\n").layout()
        # marker + UTF-8 bytes
        assert layout[0].length == 1 + len("é = 1\n".encode("utf-8"))

    def test_metadata_string(self):
        entry = PackedEntry("a.py", 3, 17, 2, 100, 20)
        assert entry.metadata == "3;17"

    def test_layout_has_no_side_effects(self):
        writer = ArchiveWriter().add("a.py", "x\n")
        assert writer.layout() == writer.layout()
        assert len(writer) == 1


# ============================================================================
# Serialization
# ============================================================================

class TestSerialization:

    def test_byte_exact(self, sample_sources, sample_archive):
        assert ArchiveWriter().add_many(sample_sources).to_bytes() == sample_archive

    def test_deterministic_across_insertion_order(self, sample_sources):
        forward = ArchiveWriter().add_many(sample_sources).to_bytes()
        backward = ArchiveWriter().add_many(reversed(list(sample_sources.items()))).to_bytes()
        assert forward == backward

    def test_ranges_point_at_content(self):
        contents = {"a.py": "one\ntwo\n", "b.py": "three", "c.py": "", "d.py": "four\n"}
        archive, layout = build_archive(contents)
        data_start = archive.index(b"#\n###") + len(b"#\n")
        for entry in layout:
            start = data_start + entry.offset
            stored = archive[start:start + entry.length]
            expected = b"".join(b"#" + line for line in contents[entry.name].encode().splitlines(True))
            assert stored == expected

    def test_padding_after_unterminated_content(self):
        archive = ArchiveWriter().add("a.py", "x").add("b.py", "y\n").to_bytes()
        assert b"#x\n### b.py ###\n#y\n" in archive

    def test_every_line_is_a_comment(self, sample_sources):
        archive = ArchiveWriter().add_many(sample_sources).to_bytes()
        assert all(line.startswith(b"#") for line in archive.splitlines())

    def test_empty_writer_raises(self):
        with pytest.raises(EmptyInputFault):
            ArchiveWriter().to_bytes()

    def test_empty_writer_allowed(self):
        assert ArchiveWriter().to_bytes(require_entries=False) == b"# DATAPACK v1\n#\n"

    def test_bytes_content_kept_verbatim(self):
        archive = ArchiveWriter().add("a.py", b"\xc3\xa9\r\n").to_bytes()
        assert archive.endswith(b"#\xc3\xa9\r\n")


# ============================================================================
# Names & duplicates
# ============================================================================

class TestNames:

    def test_duplicate_rejected_by_default(self):
        writer = ArchiveWriter().add("a.py", "1\n")
        with pytest.raises(DuplicateResourceNameFault) as exc_info:
            writer.add("a.py", "2\n")
        assert exc_info.value.name == "a.py"
        assert "a.py" in str(exc_info.value)

    def test_duplicate_replace_policy(self):
        writer = ArchiveWriter(on_duplicate="replace").add("a.py", "1\n").add("a.py", "2\n")
        assert writer.to_bytes().endswith(b"#2\n")
        assert len(writer) == 1

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            ArchiveWriter(on_duplicate="merge")

    @pytest.mark.parametrize("name", ["", "a\nb.py", "a\rb.py", "/abs/a.py"])
    def test_invalid_names(self, name):
        with pytest.raises(InvalidResourceNameFault):
            validate_name(name)

    def test_contains_and_names(self):
        writer = ArchiveWriter().add("b.py", "").add("a.py", "")
        assert "a.py" in writer
        assert "z.py" not in writer
        assert writer.names() == ["a.py", "b.py"]
