"""
Subtree CI - Subtree synchronization and publishing helpers for CI builds.

This package keeps a sparse checkout of one subtree of a remote repository in
a local working directory, and commits and pushes it back with bounded retries
once a build step has updated it.
"""

__version__ = "1.0.0"
