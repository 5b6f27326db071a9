"""
welding.py - Weld / unweld decomposition of links into compound rigid bodies.

Links that meet at a welded joint move as one rigid body (a CompoundLink).
Removing a weld may split a compound into several smaller compounds, or free
individual links entirely; adding one merges everything touching the joint.
"""
from __future__ import annotations

import logging
from typing import Iterable

import networkx as nx

from statics_tools.errors import TopologyError
from statics_tools.topology import CompoundLink
from statics_tools.topology import Mechanism

logger = logging.getLogger(__name__)


def _weld_graph(mechanism: Mechanism, link_ids: Iterable[int], removed_joint_id: int | None) -> nx.Graph:
    """Bipartite graph of welded joints and the given links incident on them."""
    G = nx.Graph()
    for lid in link_ids:
        for jid in mechanism.links[lid].joint_ids:
            if jid == removed_joint_id or not mechanism.joints[jid].welded:
                continue
            G.add_edge(('joint', jid), ('link', lid))
    return G


def split_welded_links(
    mechanism: Mechanism,
    link_ids: Iterable[int],
    removed_joint_id: int | None = None,
) -> list[list[int]]:
    """
    Partition a set of welded links after one weld is removed.

    Depth-first search runs from every still-welded joint that has not been
    reached yet, following joint -> incident links -> their other welded
    joints. Each search yields one group of links. Groups with a single link
    are dropped (that link becomes independent).

    Args:
        mechanism: Mechanism owning the links and joints
        link_ids: Links previously welded together
        removed_joint_id: Joint whose weld is being removed (ignored as a weld)

    Returns:
        List of link-id groups; no link appears in two groups
    """
    link_ids = list(link_ids)
    G = _weld_graph(mechanism, link_ids, removed_joint_id)

    # Seed order follows link order then joint order, for stable output
    seeds: list[int] = []
    for lid in link_ids:
        for jid in mechanism.links[lid].joint_ids:
            if G.has_node(('joint', jid)) and jid not in seeds:
                seeds.append(jid)

    visited: set[int] = set()
    groups: list[list[int]] = []
    for jid in seeds:
        if jid in visited:
            continue
        group: list[int] = []
        for kind, node_id in nx.dfs_preorder_nodes(G, ('joint', jid)):
            if kind == 'joint':
                visited.add(node_id)
            else:
                group.append(node_id)
        if len(group) > 1:
            # Keep member order consistent with the input
            groups.append([lid for lid in link_ids if lid in group])

    return groups


def derive_compound_groups(mechanism: Mechanism) -> list[list[int]]:
    """Recompute the welded-link partition from joint weld flags alone."""
    return split_welded_links(mechanism, list(mechanism.links))


def merge_on_weld(mechanism: Mechanism, joint_id: int) -> CompoundLink:
    """
    Weld every link at a joint together.

    All links incident on the joint, plus every member of any compound link
    already touching it, are merged into one new compound link. The old
    compounds are removed.
    """
    if joint_id not in mechanism.joints:
        raise TopologyError(f'Unknown joint {joint_id}')

    links = mechanism.connected_links(joint_id)
    if len(links) < 2:
        raise TopologyError(
            f'Cannot weld joint {mechanism.joints[joint_id].name}: needs at least 2 links, got {len(links)}',
        )

    compounds = mechanism.connected_compound_links(joint_id)
    merged: list[int] = []
    for compound in compounds:
        merged.extend(compound.link_ids)
    merged.extend(link.id for link in links)
    merged = list(dict.fromkeys(merged))

    mechanism.joints[joint_id].welded = True
    for compound in compounds:
        mechanism.remove_compound_link(compound.id)

    new_compound = mechanism.add_compound_link(merged)
    logger.debug(f"Welded joint {joint_id}: compound {new_compound.name} with links {merged}")
    return new_compound


def split_on_unweld(mechanism: Mechanism, joint_id: int) -> list[CompoundLink]:
    """
    Remove the weld at a joint and re-partition affected compound links.

    Returns:
        The newly created compound links (possibly empty)
    """
    if joint_id not in mechanism.joints:
        raise TopologyError(f'Unknown joint {joint_id}')

    joint = mechanism.joints[joint_id]
    if not joint.welded:
        return []

    affected = mechanism.connected_compound_links(joint_id)
    joint.welded = False

    created: list[CompoundLink] = []
    for compound in affected:
        groups = split_welded_links(mechanism, compound.link_ids, joint_id)
        mechanism.remove_compound_link(compound.id)
        for group in groups:
            created.append(mechanism.add_compound_link(group))
        logger.debug(
            f"Unwelded joint {joint_id}: compound {compound.name} split into {len(groups)} group(s)",
        )

    return created
