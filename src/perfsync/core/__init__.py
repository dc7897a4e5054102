"""Core functionality for perfsync: store, models, buildbot sync and API."""
