"""
Buildbot synchronization.

- config: sync configuration loading (``load_syncers``, ``load_syncers_file``)
- syncer: ``BuildbotSyncer`` and ``BuildbotBuildEntry``
- client: async JSON client over httpx
- sync: ``BuildbotTriggerable``, one sync pass for a triggerable
"""

from perfsync.core.buildbot.client import BuildbotClient
from perfsync.core.buildbot.config import (
    ArgumentKind,
    LiteralArgument,
    PropertyArgument,
    RootArgument,
    RootsExcludingArgument,
    load_syncers,
    load_syncers_file,
)
from perfsync.core.buildbot.sync import BuildbotTriggerable, SyncReport
from perfsync.core.buildbot.syncer import BuildbotBuildEntry, BuildbotSyncer

__all__ = [
    "ArgumentKind",
    "BuildbotBuildEntry",
    "BuildbotClient",
    "BuildbotSyncer",
    "BuildbotTriggerable",
    "LiteralArgument",
    "PropertyArgument",
    "RootArgument",
    "RootsExcludingArgument",
    "SyncReport",
    "load_syncers",
    "load_syncers_file",
]
