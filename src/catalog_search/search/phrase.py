"""Exact phrase matching over token positions.

Phrase queries need every term of the phrase at consecutive positions.
The helpers here work on plain position lists so they stay independent of
the postings layout.
"""

from __future__ import annotations

from collections.abc import Sequence


def phrase_frequency(position_lists: Sequence[Sequence[int]]) -> int:
    """Count occurrences of a phrase given the positions of each of its terms.

    ``position_lists[i]`` holds the positions of the i-th phrase term in
    one document field. An occurrence starts at ``p`` when term ``i`` is
    found at ``p + i`` for every ``i``.

    Args:
        position_lists: Positions for each phrase term, in phrase order.

    Returns:
        Number of phrase occurrences (0 when any term is missing).
    """
    if not position_lists or any(not positions for positions in position_lists):
        return 0

    if len(position_lists) == 1:
        return len(position_lists[0])

    followers = [set(positions) for positions in position_lists[1:]]
    count = 0
    for start in position_lists[0]:
        if all(start + offset in positions for offset, positions in enumerate(followers, start=1)):
            count += 1
    return count
