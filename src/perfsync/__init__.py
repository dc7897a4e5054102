"""
perfsync - Performance test build coordination

Serves pending build requests of performance test groups and keeps them in
sync with buildbot builders.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
