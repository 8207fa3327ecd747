"""
Ranking and filtering of candidate hits per spectrum.

Candidate hits are grouped by scan (and optionally charge), ranked by score
within each group, then filtered into a synopsis list (every hit passing a
score threshold) or a first-hits list (rank 1 only).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .constants import DOUBLE_EPSILON, SCORE_PRESETS

logger = logging.getLogger(__name__)


@dataclass
class ScanHitGroup:
    """
    Candidate hits that share a scan and, optionally, a charge.

    Attributes:
        scan: Scan number
        charge: Charge, or None when hits are grouped by scan only
        hits: Candidate hits in input order
    """

    scan: int
    charge: Optional[int]
    hits: List[Any] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.hits)


@dataclass
class RankedHit:
    """
    A candidate hit with its rank and false discovery statistics.

    The wrapped hit must expose scan, charge and score; peptide and protein
    are used for output ordering and FDR grouping when present.
    """

    hit: Any
    rank: int
    fdr: float = 0.0
    q_value: float = 0.0

    @property
    def scan(self) -> int:
        return self.hit.scan

    @property
    def charge(self) -> int:
        return self.hit.charge

    @property
    def score(self) -> float:
        return self.hit.score

    @property
    def peptide(self) -> str:
        return getattr(self.hit, "peptide", "")

    @property
    def protein(self) -> str:
        return getattr(self.hit, "protein", "")


class RankingAndFilterEngine:
    """
    Ranks candidate hits and applies synopsis or first-hits filtering.

    Args:
        higher_is_better: True for probability-like scores, False for
            p-values and E-values
        tie_epsilon: Scores closer than this share a rank
        group_by_charge: Group hits by (scan, charge) instead of scan only
        synopsis_threshold: Score a hit must reach to enter the synopsis
            list; None keeps every hit
    """

    def __init__(
        self,
        higher_is_better: bool = True,
        tie_epsilon: float = DOUBLE_EPSILON,
        group_by_charge: bool = True,
        synopsis_threshold: Optional[float] = None,
    ):
        self.higher_is_better = higher_is_better
        self.tie_epsilon = tie_epsilon
        self.group_by_charge = group_by_charge
        self.synopsis_threshold = synopsis_threshold

    @classmethod
    def from_preset(cls, tool_name: str, **kwargs) -> "RankingAndFilterEngine":
        """
        Create an engine with the score direction and threshold of a search tool.

        Args:
            tool_name: One of the SCORE_PRESETS keys, e.g. "moda" or "msalign"
            **kwargs: Overrides for the remaining constructor arguments

        Raises:
            KeyError: If the tool has no preset
        """
        try:
            _, higher_is_better, threshold = SCORE_PRESETS[tool_name.lower()]
        except KeyError:
            raise KeyError(
                f"No score preset for {tool_name}; available: {', '.join(sorted(SCORE_PRESETS))}"
            ) from None
        kwargs.setdefault("synopsis_threshold", threshold)
        return cls(higher_is_better=higher_is_better, **kwargs)

    @staticmethod
    def config_from_preset(tool_name: str) -> Dict[str, Any]:
        """Configuration overrides (score column, direction, threshold) for a tool."""
        score_column, higher_is_better, threshold = SCORE_PRESETS[tool_name.lower()]
        return {
            "score_column": score_column,
            "higher_is_better": higher_is_better,
            "synopsis_threshold": threshold,
        }

    def _sort_key(self, score: float) -> float:
        return -score if self.higher_is_better else score

    def is_better_or_equal(self, score: float, threshold: float) -> bool:
        if self.higher_is_better:
            return score >= threshold
        return score <= threshold

    def group_hits(self, hits: Iterable[Any], group_by_charge: Optional[bool] = None) -> List[ScanHitGroup]:
        """
        Group hits by scan, or by scan and charge.

        Groups are ordered by scan then charge; hits keep their input order
        inside a group.
        """
        if group_by_charge is None:
            group_by_charge = self.group_by_charge

        groups: Dict[Tuple[int, Optional[int]], ScanHitGroup] = {}
        for hit in hits:
            charge = hit.charge if group_by_charge else None
            key = (hit.scan, charge)
            group = groups.get(key)
            if group is None:
                group = ScanHitGroup(scan=hit.scan, charge=charge)
                groups[key] = group
            group.hits.append(hit)

        return [groups[key] for key in sorted(groups, key=lambda k: (k[0], k[1] if k[1] is not None else 0))]

    def rank(self, hits: Iterable[Any], tie_epsilon: Optional[float] = None) -> List[RankedHit]:
        """
        Rank one group of hits, best first.

        Ties share a rank; the next distinct score gets the previous rank
        plus one, regardless of how many hits were tied.

        Args:
            hits: Hits of one scan group
            tie_epsilon: Override for the engine's tie tolerance

        Returns:
            RankedHit list sorted best first (stable for equal scores)
        """
        if tie_epsilon is None:
            tie_epsilon = self.tie_epsilon

        ordered = sorted(hits, key=lambda h: self._sort_key(h.score))

        ranked = []
        current_rank = 0
        last_score = None
        for hit in ordered:
            if last_score is None or abs(hit.score - last_score) > tie_epsilon:
                current_rank += 1
                last_score = hit.score
            ranked.append(RankedHit(hit=hit, rank=current_rank))
        return ranked

    def rank_groups(self, groups: Iterable[ScanHitGroup]) -> List[List[RankedHit]]:
        return [self.rank(group.hits) for group in groups]

    def filter_synopsis(
        self, groups: Iterable[ScanHitGroup], threshold: Optional[float] = None
    ) -> List[RankedHit]:
        """
        Rank every group and keep the hits that pass the synopsis threshold.

        Args:
            groups: Scan hit groups
            threshold: Override for the engine's synopsis threshold; when both
                are None every hit is kept

        Returns:
            Passing hits, group by group, best first within each group
        """
        if threshold is None:
            threshold = self.synopsis_threshold

        kept = []
        total = 0
        for group in groups:
            for ranked_hit in self.rank(group.hits):
                total += 1
                if threshold is None or self.is_better_or_equal(ranked_hit.score, threshold):
                    kept.append(ranked_hit)

        logger.debug(f"Synopsis filter kept {len(kept)} of {total} hits (threshold {threshold})")
        return kept

    def filter_first_hits(self, groups: Iterable[ScanHitGroup]) -> List[RankedHit]:
        """Rank every group and keep only its rank-1 hits (ties included)."""
        kept = []
        for group in groups:
            kept.extend(ranked_hit for ranked_hit in self.rank(group.hits) if ranked_hit.rank == 1)
        return kept

    def sort_for_output(self, hits: Iterable[RankedHit]) -> List[RankedHit]:
        """
        Order hits for writing and for FDR estimation.

        Best score first, then scan, charge, peptide and protein.
        """
        return sorted(
            hits,
            key=lambda h: (
                self._sort_key(h.score),
                h.scan,
                h.charge if h.charge is not None else 0,
                h.peptide,
                h.protein,
            ),
        )
