"""
PyOpenMS-based residue masses and elemental compositions.

Internal residue masses and formulas are read once from the PyOpenMS
ResidueDB; sequence masses are then summed through a NumPy lookup table
indexed by character code.
"""

import logging

import numpy as np
from pyopenms import ResidueDB, Residue, Constants, ElementDB, EmpiricalFormula

logger = logging.getLogger(__name__)

# Standard amino acids plus selenocysteine and pyrrolysine
RESIDUE_SYMBOLS = "ACDEFGHIKLMNPQRSTVWYUO"

_residue_masses: dict = {}
_residue_formulas: dict = {}
_mass_lookup: np.ndarray = np.zeros(256, dtype=np.float64)
_water_formula = EmpiricalFormula("H2O")
_loaded = False


def _load_residues() -> None:
    global _loaded

    if _loaded:
        return

    residue_db = ResidueDB()
    for code in RESIDUE_SYMBOLS:
        if not residue_db.hasResidue(code):
            logger.debug(f"Residue {code} not available in PyOpenMS ResidueDB")
            continue
        residue = residue_db.getResidue(code)
        _residue_masses[code] = residue.getMonoWeight(Residue.ResidueType.Internal)
        _residue_formulas[code] = residue.getFormula(Residue.ResidueType.Internal)
        _mass_lookup[ord(code)] = _residue_masses[code]

    _loaded = True


def get_sequence_residue_mass(sequence: str) -> float:
    """
    Sum the internal residue masses of a clean sequence.

    Letters without a residue mass (B, J, X, Z) contribute nothing.
    """
    _load_residues()
    if not sequence:
        return 0.0
    codes = np.frombuffer(sequence.encode("ascii", errors="replace"), dtype=np.uint8)
    return float(_mass_lookup[codes].sum())


def get_unknown_residues(sequence: str) -> set:
    """Letters of sequence that have no residue mass."""
    _load_residues()
    return {code for code in sequence if code not in _residue_masses}


def count_atoms(sequence: str, element: str) -> int:
    """
    Count atoms of one element in a peptide, including the terminal water.

    Args:
        sequence: Clean peptide sequence
        element: Element symbol, e.g. "N" or "C"

    Returns:
        Number of atoms of the element; 0 for symbols PyOpenMS does not know
    """
    _load_residues()
    element_db = ElementDB()
    if not element_db.hasElement(element):
        logger.debug(f"Element {element} not available in PyOpenMS ElementDB")
        return 0

    atom = element_db.getElement(element)
    total = _water_formula.getNumberOf(atom)
    for code in sequence:
        formula = _residue_formulas.get(code)
        if formula is not None:
            total += formula.getNumberOf(atom)
    return int(total)


def get_proton_mass() -> float:
    """Get proton mass from PyOpenMS Constants."""
    return Constants.PROTON_MASS_U


def get_water_mass() -> float:
    """Get water mass (H2O) from PyOpenMS."""
    return _water_formula.getMonoWeight()


def get_c13_mass_difference() -> float:
    """Mass difference between C13 and C12 from PyOpenMS Constants."""
    return Constants.C13C12_MASSDIFF_U


_load_residues()
