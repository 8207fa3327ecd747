"""
Mass computation for annotated peptides.

Theoretical masses are recomputed from residue masses supplied by PyOpenMS
rather than trusted from the search tool, then compared against the tool's
own value and the observed precursor.
"""

import logging
from typing import Iterable, Optional, Tuple

from . import mass_provider
from .constants import (
    MASS_C13,
    MASS_CHECK_MIN_THRESHOLD,
    MASS_CHECK_PEPTIDE_DISPLAY_LENGTH,
    MASS_CHECK_SCALE,
    MISSING_PRECURSOR_MZ,
    PROTON_MASS,
    WATER_MASS,
)
from .modifications import ModificationType
from .reporting import show_periodic_warning

logger = logging.getLogger(__name__)


def convolute_mass(mass_mz: float, from_charge: int, to_charge: int = 1) -> float:
    """
    Convert a mass or m/z value between charge states.

    Charge 0 means a neutral monoisotopic mass, charge 1 the (M+H)+ value.

    Args:
        mass_mz: Mass or m/z value at from_charge
        from_charge: Charge of the input value
        to_charge: Desired charge

    Returns:
        Converted value, 0.0 for a negative charge
    """
    if from_charge < 0 or to_charge < 0:
        return 0.0

    if from_charge == to_charge:
        return mass_mz

    # Normalize to MH first
    if from_charge == 0:
        mh = mass_mz + PROTON_MASS
    elif from_charge == 1:
        mh = mass_mz
    else:
        mh = mass_mz * from_charge - PROTON_MASS * (from_charge - 1)

    if to_charge == 1:
        return mh
    if to_charge == 0:
        return mh - PROTON_MASS
    return (mh + PROTON_MASS * (to_charge - 1)) / to_charge


def mz_to_neutral_mass(mz: float, charge: int) -> float:
    """Neutral monoisotopic mass of an ion observed at mz with the given charge."""
    return convolute_mass(mz, charge, 0)


def mass_to_ppm(mass_to_convert: float, current_mz: float) -> float:
    """Express a mass difference in ppm relative to current_mz."""
    return mass_to_convert * 1e6 / current_mz


def ppm_to_mass(ppm_to_convert: float, current_mz: float) -> float:
    """Convert a ppm tolerance back to Daltons at current_mz."""
    return ppm_to_convert / 1e6 * current_mz


class MassComputationService:
    """
    Computes theoretical peptide masses and mass errors.

    The service keeps a counter of mass mismatch warnings so repeated
    mismatches over a large run are throttled.
    """

    def __init__(self, mass_check_enabled: bool = True):
        self.mass_check_enabled = mass_check_enabled
        self.mismatch_count = 0
        self.unknown_residue_count = 0

    def compute_clean_sequence_mass(self, clean_sequence: str) -> float:
        """
        Monoisotopic mass of an unmodified peptide: residues plus water.

        Letters with no known residue mass contribute nothing and are
        reported once per peptide at debug level.
        """
        if not clean_sequence:
            return 0.0

        unknown = mass_provider.get_unknown_residues(clean_sequence)
        if unknown:
            self.unknown_residue_count += 1
            logger.debug(f"No residue mass for {sorted(unknown)} in {clean_sequence}")

        return mass_provider.get_sequence_residue_mass(clean_sequence) + WATER_MASS

    def compute_total_mod_mass(self, clean_sequence: str, modifications: Iterable) -> float:
        """
        Sum the mass deltas of a peptide's modifications.

        Isotopic modifications shift every atom of their affected element, so
        their contribution is the per-atom mass times the atom count of the
        peptide.

        Args:
            clean_sequence: Clean peptide sequence
            modifications: ResidueModification records

        Returns:
            Total modification mass in Da
        """
        total = 0.0
        for modification in modifications:
            definition = modification.definition
            if definition.mod_type == ModificationType.ISOTOPIC:
                atom_count = mass_provider.count_atoms(clean_sequence, definition.affected_atom)
                total += definition.mass * atom_count
            else:
                total += definition.mass
        return total

    def compute_mass(self, clean_sequence: str, total_mod_mass: float = 0.0) -> float:
        """
        Theoretical monoisotopic mass of a modified peptide.

        Args:
            clean_sequence: Clean peptide sequence (residue letters only)
            total_mod_mass: Summed modification mass

        Returns:
            Neutral monoisotopic mass; 0.0 for an empty sequence
        """
        if not clean_sequence:
            return 0.0
        return self.compute_clean_sequence_mass(clean_sequence) + total_mod_mass

    @staticmethod
    def compute_mh(monoisotopic_mass: float) -> float:
        """(M+H)+ of a neutral monoisotopic mass."""
        return monoisotopic_mass + PROTON_MASS

    @staticmethod
    def compute_delta(
        observed_precursor_mass: float, theoretical_mass: float, charge: int = 0
    ) -> Tuple[float, float]:
        """
        Mass error between the observed precursor and the theoretical mass.

        Args:
            observed_precursor_mass: Neutral observed precursor mass, or the
                precursor m/z when charge is positive
            theoretical_mass: Theoretical neutral monoisotopic mass
            charge: Charge of observed_precursor_mass (0 for a neutral mass)

        Returns:
            Tuple of (delta in Da, delta in ppm). When there is no usable
            precursor or theoretical mass the ppm value is computed against
            a nominal m/z of 1000.
        """
        if charge > 0:
            observed_mass = mz_to_neutral_mass(observed_precursor_mass, charge)
        else:
            observed_mass = observed_precursor_mass

        delta_da = observed_mass - theoretical_mass

        if observed_precursor_mass > 0 and theoretical_mass > 0:
            denominator = theoretical_mass
        else:
            denominator = MISSING_PRECURSOR_MZ

        return delta_da, mass_to_ppm(delta_da, denominator)

    @staticmethod
    def compute_delta_ppm_c13(
        delta_mass: float,
        precursor_mass: float,
        peptide_mass: float,
        adjust_precursor_for_c13: bool = True,
    ) -> float:
        """
        Mass error in ppm after removing isotope selection errors.

        Search tools sometimes pick the 13C isotope peak instead of the
        monoisotopic one, leaving a delta near a multiple of 1.00335 Da.
        Whole C13 spacings are removed until the delta is within 0.5 Da.

        Args:
            delta_mass: Observed minus theoretical mass, in Da
            precursor_mass: Observed neutral precursor mass
            peptide_mass: Theoretical neutral peptide mass
            adjust_precursor_for_c13: Shift the precursor mass by the removed
                C13 spacings before recomputing the delta

        Returns:
            Corrected mass error in ppm
        """
        correction_count = 0

        if delta_mass >= -0.5:
            while delta_mass > 0.5:
                delta_mass -= MASS_C13
                correction_count += 1
        else:
            while delta_mass < -0.5:
                delta_mass += MASS_C13
                correction_count -= 1

        if correction_count != 0:
            if adjust_precursor_for_c13:
                precursor_mass -= correction_count * MASS_C13
            delta_mass = precursor_mass - peptide_mass

        if peptide_mass <= 0:
            return mass_to_ppm(delta_mass, MISSING_PRECURSOR_MZ)
        return mass_to_ppm(delta_mass, peptide_mass)

    @staticmethod
    def mass_check_threshold(tool_mass: float) -> float:
        """Largest tolerated difference between the tool's and the computed mass."""
        return max(MASS_CHECK_MIN_THRESHOLD, tool_mass / MASS_CHECK_SCALE)

    def validate_matching_mass(
        self,
        peptide: str,
        tool_mass: float,
        computed_mass: float,
        result_id: Optional[int] = None,
        tool_name: str = "the search tool",
    ) -> bool:
        """
        Compare the search tool's monoisotopic mass with the computed one.

        A mismatch is only a warning: the record is still processed with the
        computed mass.

        Args:
            peptide: Peptide sequence, used in the warning message
            tool_mass: Monoisotopic mass reported by the tool
            computed_mass: Monoisotopic mass computed here
            result_id: Result id added to the warning message
            tool_name: Name of the tool for the warning message

        Returns:
            True if the masses agree or the check does not apply
        """
        if not self.mass_check_enabled or tool_mass <= 0:
            return True

        threshold = self.mass_check_threshold(tool_mass)
        if abs(computed_mass - tool_mass) <= threshold:
            return True

        if len(peptide) >= MASS_CHECK_PEPTIDE_DISPLAY_LENGTH:
            peptide_display = peptide[:MASS_CHECK_PEPTIDE_DISPLAY_LENGTH] + "..."
        else:
            peptide_display = peptide

        message = (
            f"The monoisotopic mass computed by PHRP is more than {threshold:.2f} Da away "
            f"from the mass computed by {tool_name}: {computed_mass:.4f} vs. {tool_mass:.4f}; "
            f"peptide {peptide_display}"
        )
        if result_id is not None:
            message += f"; ResultID = {result_id}"

        self.mismatch_count += 1
        show_periodic_warning(logger, self.mismatch_count, message)
        return False
