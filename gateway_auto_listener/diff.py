from typing import Dict, Iterable, List, Mapping, Optional

import dataclasses

from .k8sobject import ObjectKey
from .listener import Listener, listener_name
from .listenerset import ListenerSet


@dataclasses.dataclass(frozen=True)
class NameConflict:
    """
    A hostname whose listener name is already taken by something that isn't
    this route: another route's listener, a manually created one, or an
    earlier hostname of the same route that sanitizes to the same name.
    """

    hostname: str
    listener_name: str
    owner: Optional[str]

    @property
    def message(self) -> str:
        holder = f'route {self.owner}' if self.owner else 'a listener not managed by any route'

        return f'listener {self.listener_name} for hostname {self.hostname} is already held by {holder}'


@dataclasses.dataclass
class ListenerDiff:
    """
    What one pass wants to do to the gateway on behalf of one route.

    to_add      -- listeners to append, in hostname order
    to_remove   -- names this route held and no longer wants
    kept        -- names this route holds that are already on the gateway
    recorded    -- what the route should remember holding after the pass
    conflicts   -- desired hostnames that were skipped
    """

    owner: str
    to_add: List[Listener] = dataclasses.field(default_factory=list)
    to_remove: ListenerSet = dataclasses.field(default_factory=ListenerSet)
    kept: ListenerSet = dataclasses.field(default_factory=ListenerSet)
    recorded: ListenerSet = dataclasses.field(default_factory=ListenerSet)
    conflicts: List[NameConflict] = dataclasses.field(default_factory=list)


def owned_by(owners: Mapping[str, str], owner: str) -> List[str]:
    return [name for name, holder in owners.items() if holder == owner]


def compute_diff(route_key: ObjectKey, hostnames: Iterable[str], recorded: ListenerSet,
                 existing: Iterable[str], owners: Mapping[str, str], secret_namespace: str,
                 deleting: bool = False) -> ListenerDiff:
    """
    Compare what a route wants against what it remembers holding and what is
    actually on the gateway.

    A listener already on the gateway is never rewritten. It counts as ours
    if the owner map says so, or if it has no owner and our record lists it
    (records written before listeners carried owners). Anything else with
    the same name is somebody else's and the hostname is skipped.

    In deletion mode nothing is wanted, so everything we hold goes.
    """

    owner = str(route_key)
    present = set(existing)
    diff = ListenerDiff(owner=owner)

    wanted: Dict[str, str] = {}

    if not deleting:
        for hostname in hostnames:
            name = listener_name(hostname)

            if name in wanted:
                if wanted[name] != hostname:
                    diff.conflicts.append(NameConflict(hostname, name, owner))

                continue

            holder = owners.get(name)

            if name in present:
                if holder == owner or (holder is None and name in recorded):
                    diff.kept = diff.kept.with_name(name)
                else:
                    diff.conflicts.append(NameConflict(hostname, name, holder))
                    continue
            else:
                diff.to_add.append(Listener(hostname=hostname, secret_namespace=secret_namespace))

            wanted[name] = hostname

    diff.recorded = ListenerSet(wanted)

    held = ListenerSet(list(recorded) + owned_by(owners, owner))
    stale: List[str] = []

    for name in held:
        if name in wanted:
            continue

        holder = owners.get(name)

        # Somebody else holds it now; forget it, but leave it alone.
        if holder is not None and holder != owner:
            continue

        stale.append(name)

    diff.to_remove = ListenerSet(stale)

    return diff
