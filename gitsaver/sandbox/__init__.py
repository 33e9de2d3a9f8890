"""Sandboxed, authenticated git clones."""

from gitsaver.sandbox.checkout import Cloner, GitCliCloner, GitCloneError, SandboxError

__all__ = ["Cloner", "GitCliCloner", "GitCloneError", "SandboxError"]
