"""
Shared annotation and statistics engine for peptide hit results.
"""

from .modifications import (
    ModificationCatalog,
    ModificationDefinition,
    ModificationType,
)
from .annotator import ResidueModAnnotator, ResidueModification, TerminusState, AnnotatedPeptide
from .mass import MassComputationService
from .ranking import RankingAndFilterEngine, ScanHitGroup, RankedHit
from .fdr import FDRQValueEstimator, is_reversed_protein
from .sequences import SequenceDeduplicator, UniqueSequenceEntry
from .protein_map import PeptideProteinCoordinateMapper, ProteinCoordinate

__all__ = [
    "ModificationCatalog",
    "ModificationDefinition",
    "ModificationType",
    "ResidueModAnnotator",
    "ResidueModification",
    "TerminusState",
    "AnnotatedPeptide",
    "MassComputationService",
    "RankingAndFilterEngine",
    "ScanHitGroup",
    "RankedHit",
    "FDRQValueEstimator",
    "is_reversed_protein",
    "SequenceDeduplicator",
    "UniqueSequenceEntry",
    "PeptideProteinCoordinateMapper",
    "ProteinCoordinate",
]
