"""
Tests for directory listing entries and template rendering
"""

import asyncio
import json
import os
import shutil
import tempfile
from pathlib import Path

import pytest

from davshare.fs import FileSystemError, list_directory
from davshare.listing import TemplateError, load_template, render_listing, serialize_entries
from davshare.models import AccessMode, DirEntry
from davshare.resolver import PathResolver
from davshare.utils import file_extension


class TestListDirectory:
    """Test list_directory"""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        (self.temp_dir / "docs").mkdir()
        (self.temp_dir / "a__b__secret").write_bytes(b"12345")
        (self.temp_dir / "report.pdf__xyz").write_bytes(b"pdf")
        (self.temp_dir / "plain.txt").write_bytes(b"")

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def listing(self, mode, url_path="/share"):
        return asyncio.run(list_directory(self.temp_dir, url_path, PathResolver(mode)))

    def test_synthetic_entries_come_first(self):
        entries = self.listing(AccessMode.PRIVATE)
        assert entries[0].to_dict() == {
            "name": "/", "path": "/", "extension": "Directory", "isDir": True, "date": "", "size": 0,
        }
        assert entries[1].to_dict() == {
            "name": "../", "path": "../", "extension": "Directory", "isDir": True, "date": "", "size": 0,
        }
        assert len(entries) == 2 + 4

    def test_open_mode_hides_tags(self):
        entries = {e.name: e for e in self.listing(AccessMode.OPEN)[2:]}
        assert set(entries) == {"docs/", "a__b", "report.pdf", "plain.txt"}
        assert entries["a__b"].path == "/share/a__b"
        assert entries["a__b"].size == 5
        assert entries["report.pdf"].extension == ".pdf"
        assert not any("secret" in e.name or "xyz" in e.path for e in entries.values())

    def test_authenticated_mode_shows_raw_names(self):
        names = {e.name for e in self.listing(AccessMode.SHARED)[2:]}
        assert names == {"docs/", "a__b__secret", "report.pdf__xyz", "plain.txt"}

    def test_directories(self):
        entries = {e.name: e for e in self.listing(AccessMode.PRIVATE, "/")[2:]}
        docs = entries["docs/"]
        assert docs.is_dir
        assert docs.extension == "Directory"
        assert docs.path == "/docs"
        assert len(docs.date) == len("2006/01/02-15:04:05")

    def test_enumeration_order_is_kept(self):
        expected = os.listdir(self.temp_dir)
        names = [e.name.rstrip("/") for e in self.listing(AccessMode.PRIVATE)[2:]]
        assert names == expected

    def test_missing_directory(self):
        with pytest.raises(FileSystemError):
            asyncio.run(list_directory(self.temp_dir / "nope", "/", PathResolver(AccessMode.OPEN)))


class TestRenderListing:
    """Test ${files} substitution"""

    def setup_method(self):
        self.entries = [DirEntry(name="/", path="/", extension="Directory", is_dir=True)]

    def test_two_pass_substitution_authenticated(self):
        page = render_listing("A ${files} B ${files} C", self.entries, authenticated=True)
        assert page == f"A {serialize_entries(self.entries)} B disable C"

    def test_two_pass_substitution_open(self):
        page = render_listing("A ${files} B ${files} C", self.entries, authenticated=False)
        assert page == f"A {serialize_entries(self.entries)} B  C"

    def test_only_two_occurrences_are_replaced(self):
        page = render_listing("${files}|${files}|${files}", [], authenticated=True)
        assert page == "[]|disable|${files}"

    def test_placeholder_inside_a_filename_takes_the_second_pass(self):
        entries = [DirEntry(name="${files}", path="/x", extension="", is_dir=False)]
        page = render_listing("${files}|${files}", entries, authenticated=True)
        assert '"name":"disable"' in page
        assert page.endswith("|${files}")

    def test_json_is_html_safe(self):
        entries = [DirEntry(name="</script>&", path="/x", extension="", is_dir=False)]
        payload = serialize_entries(entries)
        assert "<" not in payload and ">" not in payload and "&" not in payload
        assert json.loads(payload)[0]["name"] == "</script>&"


class TestTemplateLoading:
    """Test template reading"""

    def test_missing_template(self, tmp_path):
        with pytest.raises(TemplateError):
            asyncio.run(load_template(tmp_path / "template.html"))

    def test_reads_template(self, tmp_path):
        (tmp_path / "template.html").write_text("<p>${files}</p>", encoding="utf-8")
        assert asyncio.run(load_template(tmp_path / "template.html")) == "<p>${files}</p>"


class TestFileExtension:
    """Test extension extraction"""

    def test_extensions(self):
        assert file_extension("report.pdf") == ".pdf"
        assert file_extension("archive.tar.gz") == ".gz"
        assert file_extension("README") == ""
        assert file_extension(".bashrc") == ".bashrc"
        assert file_extension("dir.d/file") == ""
