"""Command groups for opskit CLI."""

from opskit.commands.batch import batch_group
from opskit.commands.env import env_group
from opskit.commands.kusto import kusto_group
from opskit.commands.lb import lb_group
from opskit.commands.sf import sf_group
from opskit.commands.storage import storage_group
from opskit.commands.tag import tag_group
from opskit.commands.util import util_group
from opskit.commands.watch import watch_group

__all__ = [
    "batch_group",
    "env_group",
    "kusto_group",
    "lb_group",
    "sf_group",
    "storage_group",
    "tag_group",
    "util_group",
    "watch_group",
]
