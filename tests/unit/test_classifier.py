"""
Unit tests for request classification.
"""

import os

import pytest

from listenerserver.handlers.classifier import RequestKind, classify_path, resolve_local_path


def snapshot(root):
    """Every path under root with its size and mtime."""
    result = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = os.path.join(dirpath, name)
            stat = os.stat(path)
            result[path] = (stat.st_size, stat.st_mtime_ns)
    return result


class TestClassifyPath:
    """Tests for classify_path()."""

    def test_favicon_is_icon_without_a_file(self, root_tree):
        assert not (root_tree / "favicon.ico").exists()
        assert classify_path(root_tree, "/favicon.ico") == RequestKind.ICON

    def test_favicon_is_icon_even_when_a_file_exists(self, root_tree):
        (root_tree / "favicon.ico").write_bytes(b"\x00")
        assert classify_path(root_tree, "/favicon.ico") == RequestKind.ICON

    @pytest.mark.parametrize("path", ["/hello.txt", "/docs/readme.md", "/with space.txt"])
    def test_existing_file(self, root_tree, path):
        assert classify_path(root_tree, path) == RequestKind.FILE

    @pytest.mark.parametrize("path", ["/", "/docs", "/docs/", "/docs/nested/", "/empty"])
    def test_existing_directory(self, root_tree, path):
        assert classify_path(root_tree, path) == RequestKind.DIRECTORY

    @pytest.mark.parametrize("path", ["/missing.txt", "/docs/missing/", "/hello.txt/extra"])
    def test_missing_path(self, root_tree, path):
        assert classify_path(root_tree, path) == RequestKind.OTHER

    @pytest.mark.parametrize("path", ["/../secret.txt", "/docs/../../secret.txt", "/.."])
    def test_traversal_outside_root(self, root_tree, path):
        assert (root_tree.parent / "secret.txt").is_file()
        assert classify_path(root_tree, path) == RequestKind.OTHER

    def test_traversal_inside_root_is_fine(self, root_tree):
        assert classify_path(root_tree, "/docs/../hello.txt") == RequestKind.FILE

    def test_embedded_nul(self, root_tree):
        assert classify_path(root_tree, "/hello.txt\x00.png") == RequestKind.OTHER

    def test_overlong_name(self, root_tree):
        assert classify_path(root_tree, "/" + "a" * 5000) == RequestKind.OTHER

    def test_symlink_escaping_root(self, root_tree):
        link = root_tree / "escape.txt"
        try:
            link.symlink_to(root_tree.parent / "secret.txt")
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not supported")

        assert classify_path(root_tree, "/escape.txt") == RequestKind.OTHER

    def test_root_with_trailing_separator(self, root_tree):
        root = str(root_tree) + os.sep
        assert classify_path(root, "/hello.txt") == RequestKind.FILE
        assert classify_path(root, "/") == RequestKind.DIRECTORY

    def test_pure(self, root_tree):
        """Same inputs, same answer, and the tree is left untouched."""
        before = snapshot(root_tree)
        paths = ["/favicon.ico", "/hello.txt", "/docs/", "/missing", "/../secret.txt"]

        first = [classify_path(root_tree, p) for p in paths]
        second = [classify_path(root_tree, p) for p in paths]

        assert first == second
        assert snapshot(root_tree) == before


class TestResolveLocalPath:
    """Tests for resolve_local_path()."""

    def test_resolves_under_root(self, root_tree):
        assert resolve_local_path(root_tree, "/docs/readme.md") == (root_tree / "docs" / "readme.md").resolve()

    def test_root_itself(self, root_tree):
        assert resolve_local_path(root_tree, "/") == root_tree.resolve()

    def test_outside_root(self, root_tree):
        assert resolve_local_path(root_tree, "/../secret.txt") is None
