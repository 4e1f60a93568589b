"""
Route resolution for the hub-and-spoke topology.

Every spoke connects only to the hub, so a bundle travels either one hop
(when the hub is an endpoint) or two hops through the hub.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Hop:
    """One connector traversal from `from_chain_id` to `to_chain_id`."""

    from_chain_id: int
    to_chain_id: int


def resolve_hops(from_chain_id: int, to_chain_id: int, hub_chain_id: int) -> tuple[Hop, ...]:
    """
    Resolve the ordered hops a bundle takes between two chains.

    Args:
        from_chain_id: Origin chain
        to_chain_id: Destination chain
        hub_chain_id: The hub every spoke is connected to

    Returns:
        Empty for a local route, one hop when either end is the hub,
        otherwise spoke -> hub -> spoke
    """
    if from_chain_id == to_chain_id:
        return ()
    if from_chain_id == hub_chain_id or to_chain_id == hub_chain_id:
        return (Hop(from_chain_id, to_chain_id),)
    return (Hop(from_chain_id, hub_chain_id), Hop(hub_chain_id, to_chain_id))


def next_hop(
    current_chain_id: int,
    from_chain_id: int,
    to_chain_id: int,
    hub_chain_id: int,
) -> Hop | None:
    """Return the hop leaving `current_chain_id`, or None once at the destination."""
    for hop in resolve_hops(from_chain_id, to_chain_id, hub_chain_id):
        if hop.from_chain_id == current_chain_id:
            return hop
    return None
