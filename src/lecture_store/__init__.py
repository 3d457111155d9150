"""
Lecture Store - file-backed persistence for subjects and lecture notes.
Subjects and entry metadata live in two JSON index files; each entry body is
a plain Markdown file in a per-entry directory.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("lecture-store")
except PackageNotFoundError:
    __version__ = "0.3.0"
