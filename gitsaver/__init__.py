"""gitsaver: back up GitHub repositories whenever their main branch is pushed."""

__version__ = "0.1.0"
