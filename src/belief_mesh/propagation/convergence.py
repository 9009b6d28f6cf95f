"""Convergence and partition metrics over groups of belief sets.

Convergence is measured by presence: the fraction of (set, belief id)
slots that are filled across the union of ids. ``content_aware=True``
tightens this so a slot only counts when the set holds the majority
content for that id.

Partition detection clusters sets by the Jaccard similarity of their id
sets using average-link agglomerative clustering.
"""

from __future__ import annotations

from collections import Counter
from typing import Sequence
import logging

import numpy as np

from ..beliefs.belief_set import BeliefSet

logger = logging.getLogger(__name__)


def _content_key(content: object) -> str:
    # Content may be unhashable (dicts, lists), so compare by repr
    return repr(content)


def verify_convergence(
    belief_sets: Sequence[BeliefSet],
    threshold: float = 0.95,
    *,
    content_aware: bool = False,
) -> tuple[bool, float]:
    """Measure how far a group of belief sets has converged.

    Args:
        belief_sets: Sets to compare
        threshold: Score at or above which the group counts as converged
        content_aware: Only count a set toward an id when its content
            matches the most common content for that id

    Returns:
        (converged, score) where score is in [0, 1]. Zero or one sets,
        or no beliefs at all, are trivially converged with score 1.0.
    """
    if len(belief_sets) <= 1:
        return True, 1.0

    all_ids = set().union(*(s.ids() for s in belief_sets))
    if not all_ids:
        return True, 1.0

    filled = 0
    for belief_id in all_ids:
        holders = [s.beliefs[belief_id] for s in belief_sets if belief_id in s.beliefs]
        if content_aware:
            counts = Counter(_content_key(atom.content) for atom in holders)
            filled += counts.most_common(1)[0][1]
        else:
            filled += len(holders)

    score = filled / (len(belief_sets) * len(all_ids))
    return score >= threshold, score


def belief_set_similarity(a: BeliefSet, b: BeliefSet) -> float:
    """Jaccard similarity of two sets' belief ids (1.0 when both are empty)."""
    ids_a, ids_b = a.ids(), b.ids()
    union = ids_a | ids_b
    if not union:
        return 1.0
    return len(ids_a & ids_b) / len(union)


def similarity_matrix(belief_sets: Sequence[BeliefSet]) -> np.ndarray:
    """Pairwise Jaccard similarity matrix (symmetric, ones on the diagonal)."""
    n = len(belief_sets)
    matrix = np.ones((n, n), dtype=float)
    for i in range(n):
        for j in range(i + 1, n):
            sim = belief_set_similarity(belief_sets[i], belief_sets[j])
            matrix[i, j] = matrix[j, i] = sim
    return matrix


def _average_link_clusters(matrix: np.ndarray, threshold: float) -> list[list[int]]:
    """Merge the most similar pair of clusters while their average
    inter-member similarity is at least ``threshold``."""
    clusters = [[i] for i in range(matrix.shape[0])]

    while len(clusters) > 1:
        best_sim = -1.0
        best_pair = (-1, -1)
        for i in range(len(clusters)):
            for j in range(i + 1, len(clusters)):
                sim = float(matrix[np.ix_(clusters[i], clusters[j])].mean())
                if sim > best_sim:
                    best_sim, best_pair = sim, (i, j)

        if best_sim < threshold:
            break

        i, j = best_pair
        merged = clusters[i] + clusters[j]
        clusters = [c for k, c in enumerate(clusters) if k not in (i, j)]
        clusters.insert(0, merged)

    return clusters


def detect_partition(
    belief_sets: Sequence[BeliefSet],
    threshold: float = 0.3,
) -> tuple[bool, list[list[BeliefSet]]]:
    """Detect whether belief sets have split into disjoint groups.

    Args:
        belief_sets: Sets to cluster
        threshold: Minimum average similarity for two clusters to merge

    Returns:
        (partitioned, clusters); partitioned iff more than one cluster
    """
    if len(belief_sets) <= 1:
        return False, [list(belief_sets)]

    matrix = similarity_matrix(belief_sets)
    index_clusters = _average_link_clusters(matrix, threshold)
    clusters = [[belief_sets[i] for i in sorted(c)] for c in index_clusters]

    if len(clusters) > 1:
        logger.debug(
            f"Partition detected: {len(clusters)} clusters over {len(belief_sets)} sets"
        )
    return len(clusters) > 1, clusters

