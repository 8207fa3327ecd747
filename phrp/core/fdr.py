"""
False discovery rate and q-value estimation from decoy protein matches.

Hits are expected sorted best first. Adjacent hits for the same scan,
charge and peptide (one row per protein) form a single statistical unit.
"""

import logging
from typing import Iterable, List, Optional, Sequence

import numpy as np

from .constants import DECOY_PREFIXES, DECOY_SUFFIXES
from .protein_map import parse_protein_list

logger = logging.getLogger(__name__)


def is_reversed_protein(
    protein_name: str,
    decoy_prefixes: Sequence[str] = DECOY_PREFIXES,
    decoy_suffixes: Sequence[str] = DECOY_SUFFIXES,
) -> bool:
    """
    Check whether a protein name follows a decoy naming convention.

    Matching is case-insensitive.

    Args:
        protein_name: Protein name
        decoy_prefixes: Name prefixes that mark a decoy protein
        decoy_suffixes: Name suffixes that mark a decoy protein

    Returns:
        True for a reversed or scrambled protein
    """
    name = protein_name.strip().lower()
    if any(name.startswith(prefix.lower()) for prefix in decoy_prefixes):
        return True
    return any(name.endswith(suffix.lower()) for suffix in decoy_suffixes)


class FDRQValueEstimator:
    """
    Assigns target-decoy FDR and q-values to a best-first list of hits.

    A unit counts as reversed only when every protein it maps to is a decoy.
    """

    def __init__(
        self,
        decoy_prefixes: Optional[Sequence[str]] = None,
        decoy_suffixes: Optional[Sequence[str]] = None,
    ):
        self.decoy_prefixes = list(decoy_prefixes) if decoy_prefixes is not None else list(DECOY_PREFIXES)
        self.decoy_suffixes = list(decoy_suffixes) if decoy_suffixes is not None else list(DECOY_SUFFIXES)
        self.forward_count = 0
        self.reverse_count = 0

    def is_reversed_protein(self, protein_name: str) -> bool:
        return is_reversed_protein(protein_name, self.decoy_prefixes, self.decoy_suffixes)

    def _protein_names(self, ranked_hit) -> List[str]:
        names = getattr(ranked_hit.hit, "proteins", None)
        if names:
            return list(names)
        return [name for name, _ in parse_protein_list(ranked_hit.protein)]

    def is_reversed_unit(self, ranked_hits: Iterable) -> bool:
        """True if all proteins of all rows in the unit are decoys."""
        saw_protein = False
        for ranked_hit in ranked_hits:
            for name in self._protein_names(ranked_hit):
                saw_protein = True
                if not self.is_reversed_protein(name):
                    return False
        return saw_protein

    @staticmethod
    def _unit_end(hits: Sequence, start: int) -> int:
        end = start
        first = hits[start]
        while end + 1 < len(hits):
            candidate = hits[end + 1]
            if (
                candidate.scan == first.scan
                and candidate.charge == first.charge
                and candidate.peptide == first.peptide
            ):
                end += 1
            else:
                break
        return end

    def estimate(self, filtered_hits: Sequence) -> None:
        """
        Set fdr and q_value on every hit.

        FDR at each unit is reverse_count / forward_count over the units seen
        so far (1 while no forward unit has been seen). The q-value of a hit
        is the minimum FDR at that or any worse position, capped at 1.

        Args:
            filtered_hits: RankedHit list sorted best first; mutated in place
        """
        self.forward_count = 0
        self.reverse_count = 0

        if not filtered_hits:
            logger.debug("No hits for FDR estimation")
            return

        fdr_values = np.zeros(len(filtered_hits), dtype=np.float64)

        index = 0
        while index < len(filtered_hits):
            end = self._unit_end(filtered_hits, index)

            if self.is_reversed_unit(filtered_hits[index : end + 1]):
                self.reverse_count += 1
            else:
                self.forward_count += 1

            fdr = 1.0
            if self.forward_count > 0:
                fdr = self.reverse_count / float(self.forward_count)

            fdr_values[index : end + 1] = fdr
            index = end + 1

        # Running minimum from the worst hit to the best; capping every value
        # at 1 is the same as seeding the minimum with the capped last FDR
        q_values = np.minimum.accumulate(np.minimum(fdr_values[::-1], 1.0))[::-1]

        for ranked_hit, fdr, q_value in zip(filtered_hits, fdr_values, q_values):
            ranked_hit.fdr = float(fdr)
            ranked_hit.q_value = float(q_value)

        logger.info(
            f"FDR estimated for {len(filtered_hits)} hits: "
            f"{self.forward_count} forward, {self.reverse_count} reversed"
        )
        self._validate_q_value_monotonicity(filtered_hits)

    @staticmethod
    def _validate_q_value_monotonicity(hits: Sequence) -> None:
        """Q-values read from worst to best must never increase."""
        violations = 0
        for i in range(len(hits) - 1):
            if hits[i].q_value > hits[i + 1].q_value:
                violations += 1
                if violations <= 3:
                    logger.debug(
                        f"Q-value violation at position {i}: "
                        f"{hits[i].q_value:.5f} > {hits[i + 1].q_value:.5f}"
                    )
        if violations:
            logger.warning(f"Q-value monotonicity violations detected: {violations}/{len(hits) - 1}")
