"""
Structural diff between two course snapshots.

This module provides:
- Greedy local-equality matching of children
- Minimal changed subtree computation
- Optional reporting of removed items (symmetric mode)
"""

from typing import List, Optional

from courses.models import Item, local_equal


def diff(current: Item, previous: Optional[Item], symmetric: bool = False) -> Optional[Item]:
    """
    Compute the subtree of ``current`` that is not present in ``previous``.

    Args:
        current: Freshly fetched tree
        previous: Stored tree, or None if there is none
        symmetric: Also append children of ``previous`` that have no
            counterpart in ``current``

    Returns:
        A tree with the root identity of ``current`` holding only the
        changed children, or None when nothing changed
    """
    if previous is None:
        return current

    # A renamed or retyped node is reported as new in its entirety
    if not local_equal(current, previous):
        return current

    remaining: List[Item] = list(previous.children)
    changed: List[Item] = []

    for child in current.children:
        for index, candidate in enumerate(remaining):
            if local_equal(child, candidate):
                del remaining[index]
                child_diff = diff(child, candidate, symmetric)
                if child_diff is not None:
                    changed.append(child_diff)
                break
        else:
            changed.append(child)

    if symmetric:
        changed.extend(remaining)

    if not changed:
        return None
    return current.model_copy(update={"children": changed})
