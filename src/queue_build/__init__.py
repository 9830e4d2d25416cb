"""queue-build.

Debounced, delayed GitHub Actions workflow dispatch for repositories that have the
GitHub App installed.
"""

__version__ = "1.0.0"
