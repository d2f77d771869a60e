"""changes-lens: live, filtered view of a git working directory's changes."""

__version__ = "0.1.0"
