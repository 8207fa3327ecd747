"""
Residue modification annotator.

This module turns a peptide written in a search tool's inline modification
notation into residue-localized modifications, combining inline dynamic mods
with the static, terminal and isotopic mods configured in the catalog.

Two notations are understood:

* inline masses, as written by MODa and MODPlus: ``K.PEP+15.995TIDE.R``,
  ``-.+42.011MPEPTIDE.R``
* bracketed masses with optional ambiguous groups, as written by MSAlign:
  ``K.(ST)[79.97]PEPTIDE.R``, ``PEP[15.995]TIDE``
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .constants import (
    C_TERMINAL_PEPTIDE_SYMBOL,
    C_TERMINAL_PROTEIN_SYMBOL,
    MASS_DIGITS_OF_PRECISION,
    N_TERMINAL_PEPTIDE_SYMBOL,
    N_TERMINAL_PROTEIN_SYMBOL,
    NOTATION_BRACKETED,
    NOTATION_INLINE,
    PREFIX_SUFFIX_SEPARATOR,
    PROTEIN_TERMINUS_SYMBOL,
)
from .exceptions import ModificationResolutionError
from .modifications import (
    ModificationCatalog,
    ModificationDefinition,
    ModificationType,
    TerminusState,
)

logger = logging.getLogger(__name__)

# Bracketed notation keeps three digits but falls back to two,
# since some tools report masses like (DIQM)[16.00]
BRACKETED_DIGITS_OF_PRECISION = 3
BRACKETED_DIGITS_OF_PRECISION_LOOSE = 2

# Characters that X!Tandem style output uses for the protein termini
_ALTERNATE_TERMINUS_SYMBOLS = {"[": PROTEIN_TERMINUS_SYMBOL, "]": PROTEIN_TERMINUS_SYMBOL}


@dataclass(frozen=True)
class ResidueModification:
    """
    A modification attached to one residue of a clean sequence.

    Attributes:
        definition: Modification definition
        residue: Residue letter at the position
        position: 1-based position in the clean sequence
        terminus_state: Terminus state of that residue
    """

    definition: ModificationDefinition
    residue: str
    position: int
    terminus_state: TerminusState = TerminusState.NONE

    @property
    def mass(self) -> float:
        return self.definition.mass


@dataclass
class AnnotatedPeptide:
    """
    A peptide with its localized modifications and recomputed masses.

    Instances are created by ResidueModAnnotator.annotate_peptide and are
    treated as read-only afterwards.
    """

    clean_sequence: str
    prefix: str
    suffix: str
    modifications: Tuple[ResidueModification, ...]
    total_mod_mass: float
    monoisotopic_mass: float
    mh: float
    errors: List[ModificationResolutionError] = field(default_factory=list)

    @property
    def mod_count(self) -> int:
        return len(self.modifications)

    @property
    def mod_description(self) -> str:
        return get_modification_description(self.modifications)

    @property
    def sequence_with_mods(self) -> str:
        return get_sequence_with_mods(self.clean_sequence, self.modifications)

    def sequence_with_prefix_and_suffix(self, with_mods: bool = True) -> str:
        sequence = self.sequence_with_mods if with_mods else self.clean_sequence
        prefix = self.prefix[-1:] or PROTEIN_TERMINUS_SYMBOL
        suffix = self.suffix[:1] or PROTEIN_TERMINUS_SYMBOL
        return f"{prefix}.{sequence}.{suffix}"


class _ParseState(Enum):
    NORMAL = 0
    ACCUMULATING_MASS_DIGITS = 1


def _is_residue_letter(char: str) -> bool:
    return "A" <= char <= "Z" or "a" <= char <= "z"


def clean_sequence(sequence: str) -> str:
    """Keep only residue letters (uppercased), dropping all modification notation."""
    return "".join(c.upper() for c in sequence if _is_residue_letter(c))


def _is_flank(text: str) -> bool:
    """Prefix and suffix residues are letters or protein terminus symbols."""
    return all(
        _is_residue_letter(c) or c == PROTEIN_TERMINUS_SYMBOL or c in _ALTERNATE_TERMINUS_SYMBOLS
        for c in text
    )


def split_prefix_and_suffix(sequence: str) -> Tuple[str, str, str]:
    """
    Split a sequence such as ``K.PEPTIDE.R`` into its parts.

    Args:
        sequence: Sequence, possibly with prefix and suffix residues

    Returns:
        Tuple of (primary sequence, prefix, suffix); prefix and suffix are
        empty when the sequence has none
    """
    if not sequence:
        return "", "", ""

    if sequence.startswith("..") and len(sequence) > 2:
        sequence = "." + sequence[2:]
    if sequence.endswith("..") and len(sequence) > 2:
        sequence = sequence[:-2] + "."

    first = sequence.find(PREFIX_SUFFIX_SEPARATOR)
    if first < 0:
        return sequence, "", ""
    last = sequence.rfind(PREFIX_SUFFIX_SEPARATOR)

    if last > first + 1:
        prefix, suffix = sequence[:first], sequence[last + 1:]
        if _is_flank(prefix) and _is_flank(suffix):
            return sequence[first + 1:last], prefix, suffix
        return sequence, "", ""

    if last == first + 1:
        if first <= 1 and _is_flank(sequence[:first]) and _is_flank(sequence[last + 1:]):
            return "", sequence[:first], sequence[last + 1:]
        return sequence, "", ""

    # Only one period
    if first == 0:
        return sequence[1:], "", ""
    if first == len(sequence) - 1:
        return sequence[:-1], "", ""
    return sequence, "", ""


def _terminus_residue(residues: str, from_end: bool) -> str:
    residues = residues.strip()
    if not residues:
        return ""
    char = residues[-1] if from_end else residues[0]
    return _ALTERNATE_TERMINUS_SYMBOLS.get(char, char)


def peptide_terminus_state(prefix: str, suffix: str) -> TerminusState:
    """
    Determine whether a peptide sits at a protein terminus.

    A prefix of ``-`` means the peptide starts the protein, a suffix of ``-``
    means it ends it.
    """
    at_n = _terminus_residue(prefix, from_end=True) == PROTEIN_TERMINUS_SYMBOL
    at_c = _terminus_residue(suffix, from_end=False) == PROTEIN_TERMINUS_SYMBOL
    if at_n and at_c:
        return TerminusState.PROTEIN_N_AND_C_TERMINUS
    if at_n:
        return TerminusState.PROTEIN_N_TERMINUS
    if at_c:
        return TerminusState.PROTEIN_C_TERMINUS
    return TerminusState.NONE


def determine_residue_terminus_state(
    position: int, length: int, at_protein_n: bool, at_protein_c: bool
) -> TerminusState:
    """
    Terminus state of the residue at a 1-based position.

    Args:
        position: Residue position in the peptide
        length: Peptide length
        at_protein_n: Peptide starts at the protein N-terminus
        at_protein_c: Peptide ends at the protein C-terminus

    Returns:
        TerminusState for the residue
    """
    if position == 1:
        if at_protein_n:
            if at_protein_c:
                return TerminusState.PROTEIN_N_AND_C_TERMINUS
            return TerminusState.PROTEIN_N_TERMINUS
        return TerminusState.PEPTIDE_N_TERMINUS
    if position == length:
        if at_protein_c:
            return TerminusState.PROTEIN_C_TERMINUS
        return TerminusState.PEPTIDE_C_TERMINUS
    return TerminusState.NONE


def get_modification_description(modifications) -> str:
    """
    Describe modifications as ``Tag:position`` joined by commas.

    Entries are sorted by position, then by tag, e.g. ``MinusH2O:1,Plus1Oxy:4``.
    """
    ordered = sorted(
        modifications,
        key=lambda mod: (mod.position, mod.definition.mass_correction_tag),
    )
    return ",".join(f"{mod.definition.mass_correction_tag.strip()}:{mod.position}" for mod in ordered)


def get_sequence_with_mods(sequence: str, modifications) -> str:
    """
    Insert the symbols of dynamic modifications after their residues.

    Static, terminal and isotopic modifications carry no symbol in the output.
    """
    symbols = {}
    for mod in modifications:
        definition = mod.definition
        if definition.mod_type not in (ModificationType.DYNAMIC, ModificationType.UNKNOWN):
            continue
        symbols.setdefault(mod.position, []).append(definition.symbol)

    parts = []
    for position, residue in enumerate(sequence, start=1):
        parts.append(residue)
        parts.extend(symbols.get(position, []))
    return "".join(parts)


class _PeptideContext:
    """Per-call state: the clean sequence and where it sits in its protein."""

    def __init__(self, sequence_with_mods: str, prefix: str, suffix: str, result_id: int):
        self.sequence_with_mods = sequence_with_mods
        self.clean_sequence = clean_sequence(sequence_with_mods)
        self.prefix = prefix
        self.suffix = suffix
        self.result_id = result_id
        self.terminus_state = peptide_terminus_state(prefix, suffix)
        self.modifications: List[ResidueModification] = []
        self.errors: List[ModificationResolutionError] = []

    @property
    def at_protein_n(self) -> bool:
        return self.terminus_state in (
            TerminusState.PROTEIN_N_TERMINUS,
            TerminusState.PROTEIN_N_AND_C_TERMINUS,
        )

    @property
    def at_protein_c(self) -> bool:
        return self.terminus_state in (
            TerminusState.PROTEIN_C_TERMINUS,
            TerminusState.PROTEIN_N_AND_C_TERMINUS,
        )

    def residue_terminus_state(self, position: int) -> TerminusState:
        return determine_residue_terminus_state(
            position, len(self.clean_sequence), self.at_protein_n, self.at_protein_c
        )


class ResidueModAnnotator:
    """
    Parse modification notation into residue-localized modifications.

    The parser is a small state machine over the sequence. On each residue
    letter a pending inline mass is attached to the previous residue and the
    static mods targeting the letter are added. Masses are resolved through
    the catalog as dynamic modifications, auto-defining unknown ones.
    """

    def __init__(
        self,
        catalog: ModificationCatalog,
        notation: str = NOTATION_INLINE,
        mass_digits_of_precision: Optional[int] = None,
        mass_digits_of_precision_loose: Optional[int] = None,
        allow_duplicate_mod_on_terminus: bool = True,
    ):
        """
        Initialize the annotator.

        Args:
            catalog: Modification catalog used for lookups
            notation: NOTATION_INLINE or NOTATION_BRACKETED
            mass_digits_of_precision: Digits used to match inline masses
            mass_digits_of_precision_loose: Loosest digits used to name unknown masses
            allow_duplicate_mod_on_terminus: Allow a terminal static mod on a residue
                that already carries a modification with the same tag or mass
        """
        if notation not in (NOTATION_INLINE, NOTATION_BRACKETED):
            raise ValueError(f"Unknown modification notation: {notation}")

        self.catalog = catalog
        self.notation = notation
        if mass_digits_of_precision is None:
            if notation == NOTATION_BRACKETED:
                mass_digits_of_precision = BRACKETED_DIGITS_OF_PRECISION
            else:
                mass_digits_of_precision = MASS_DIGITS_OF_PRECISION
        if mass_digits_of_precision_loose is None:
            if notation == NOTATION_BRACKETED:
                mass_digits_of_precision_loose = BRACKETED_DIGITS_OF_PRECISION_LOOSE
            else:
                mass_digits_of_precision_loose = mass_digits_of_precision
        self.mass_digits_of_precision = mass_digits_of_precision
        self.mass_digits_of_precision_loose = mass_digits_of_precision_loose
        self.allow_duplicate_mod_on_terminus = allow_duplicate_mod_on_terminus

        # Errors recorded by the most recent annotate call
        self.errors: List[ModificationResolutionError] = []

    # Public API

    def annotate(
        self,
        sequence_with_mods: str,
        update_occurrence_counts: bool = False,
        prefix: Optional[str] = None,
        suffix: Optional[str] = None,
        result_id: int = 0,
    ) -> List[ResidueModification]:
        """
        Resolve the inline and static residue modifications of a peptide.

        Args:
            sequence_with_mods: Peptide in the tool's notation; may include
                prefix and suffix residues (``K.PEP+15.995TIDE.R``)
            update_occurrence_counts: Count each attached mod in the catalog
            prefix: Prefix residues; split from the sequence when None
            suffix: Suffix residues; split from the sequence when None
            result_id: Identifier of the originating record, used in errors

        Returns:
            Residue modifications in the order they were found
        """
        context = self._make_context(sequence_with_mods, prefix, suffix, result_id)
        self._parse_residue_mods(context, update_occurrence_counts)
        self.errors = context.errors
        return list(context.modifications)

    def annotate_peptide(
        self,
        sequence_with_mods: str,
        update_occurrence_counts: bool = False,
        prefix: Optional[str] = None,
        suffix: Optional[str] = None,
        result_id: int = 0,
        mass_service=None,
    ) -> AnnotatedPeptide:
        """
        Fully annotate a peptide and compute its masses.

        Residue modifications are parsed first; isotopic modifications and the
        peptide/protein terminus static modifications are added after them.

        Args:
            sequence_with_mods: Peptide in the tool's notation
            update_occurrence_counts: Count each attached mod in the catalog
            prefix: Prefix residues; split from the sequence when None
            suffix: Suffix residues; split from the sequence when None
            result_id: Identifier of the originating record
            mass_service: MassComputationService; a default one is created when None

        Returns:
            AnnotatedPeptide
        """
        if mass_service is None:
            from .mass import MassComputationService

            mass_service = MassComputationService()

        context = self._make_context(sequence_with_mods, prefix, suffix, result_id)
        self._parse_residue_mods(context, update_occurrence_counts)
        self._add_isotopic_mods(context, update_occurrence_counts)
        self._add_static_terminus_mods(context, update_occurrence_counts)
        self.errors = context.errors

        modifications = tuple(context.modifications)
        total_mod_mass = mass_service.compute_total_mod_mass(context.clean_sequence, modifications)
        mass = mass_service.compute_mass(context.clean_sequence, total_mod_mass)

        return AnnotatedPeptide(
            clean_sequence=context.clean_sequence,
            prefix=context.prefix,
            suffix=context.suffix,
            modifications=modifications,
            total_mod_mass=total_mod_mass,
            monoisotopic_mass=mass,
            mh=mass_service.compute_mh(mass),
            errors=list(context.errors),
        )

    # Parsing

    def _make_context(self, sequence_with_mods, prefix, suffix, result_id) -> _PeptideContext:
        if prefix is None and suffix is None:
            primary, prefix, suffix = split_prefix_and_suffix(sequence_with_mods)
        else:
            primary = sequence_with_mods
        return _PeptideContext(primary, prefix or "", suffix or "", result_id)

    def _parse_residue_mods(self, context: _PeptideContext, update_occurrence_counts: bool) -> None:
        if self.notation == NOTATION_BRACKETED:
            self._parse_bracketed(context, update_occurrence_counts)
        else:
            self._parse_inline(context, update_occurrence_counts)

    def _parse_inline(self, context: _PeptideContext, update_occurrence_counts: bool) -> None:
        state = _ParseState.NORMAL
        mass_digits = ""
        recent_residue = ""
        position = 0

        for char in context.sequence_with_mods:
            if _is_residue_letter(char):
                if state == _ParseState.ACCUMULATING_MASS_DIGITS:
                    self._attach_mass(context, mass_digits, recent_residue, position, update_occurrence_counts)
                    state = _ParseState.NORMAL
                recent_residue = char.upper()
                position += 1
                self._attach_static_mods(context, recent_residue, position, update_occurrence_counts)
                continue

            is_number_char = char in "+-" or char.isdigit()
            if state == _ParseState.ACCUMULATING_MASS_DIGITS:
                if is_number_char or char == ".":
                    mass_digits += char
            elif is_number_char:
                mass_digits = char
                state = _ParseState.ACCUMULATING_MASS_DIGITS
            # Anything else is ignored

        if state == _ParseState.ACCUMULATING_MASS_DIGITS:
            self._attach_mass(context, mass_digits, recent_residue, position, update_occurrence_counts)

    def _parse_bracketed(self, context: _PeptideContext, update_occurrence_counts: bool) -> None:
        state = _ParseState.NORMAL
        mass_digits = ""
        recent_residue = ""
        position = 0

        # Ambiguous group handling: the first residue after '(' anchors the group
        in_ambiguous_group = False
        capture_anchor = False
        clear_anchor = False
        anchor_residue = ""
        anchor_position = 0

        for char in context.sequence_with_mods:
            if _is_residue_letter(char):
                recent_residue = char.upper()
                position += 1
                if capture_anchor:
                    anchor_residue = recent_residue
                    anchor_position = position
                    capture_anchor = False
                elif clear_anchor:
                    anchor_residue = ""
                    anchor_position = 0
                    clear_anchor = False
                self._attach_static_mods(context, recent_residue, position, update_occurrence_counts)
            elif char == "(":
                in_ambiguous_group = True
                capture_anchor = True
            elif char == ")":
                if in_ambiguous_group:
                    clear_anchor = True
                in_ambiguous_group = False
            elif char == "[":
                mass_digits = ""
                state = _ParseState.ACCUMULATING_MASS_DIGITS
            elif char == "]":
                if state != _ParseState.ACCUMULATING_MASS_DIGITS:
                    continue
                if anchor_residue:
                    self._attach_mass(context, mass_digits, anchor_residue, anchor_position, update_occurrence_counts)
                else:
                    self._attach_mass(context, mass_digits, recent_residue, position, update_occurrence_counts)
                state = _ParseState.NORMAL
            elif state == _ParseState.ACCUMULATING_MASS_DIGITS:
                mass_digits += char

        if state == _ParseState.ACCUMULATING_MASS_DIGITS and mass_digits:
            # Unterminated mass at the end of the sequence
            if anchor_residue:
                self._attach_mass(context, mass_digits, anchor_residue, anchor_position, update_occurrence_counts)
            else:
                self._attach_mass(context, mass_digits, recent_residue, position, update_occurrence_counts)

    def _attach_static_mods(
        self, context: _PeptideContext, residue: str, position: int, update_occurrence_counts: bool
    ) -> None:
        static_mods = self.catalog.static_mods_for(residue)
        if not static_mods:
            return
        terminus_state = context.residue_terminus_state(position)
        for definition in static_mods:
            self._add_modification(context, definition, residue, position, terminus_state, update_occurrence_counts)

    def _attach_mass(
        self,
        context: _PeptideContext,
        mass_digits: str,
        residue: str,
        position: int,
        update_occurrence_counts: bool,
    ) -> None:
        try:
            mass = float(mass_digits)
        except ValueError:
            self._record_error(context, f"Unable to parse modification mass '{mass_digits}'")
            return

        if position == 0:
            # Mass before any residue: N-terminal mod on the first residue
            position = 1
            residue = context.clean_sequence[:1]

        if position > len(context.clean_sequence):
            self._record_error(
                context,
                f"Modification mass {mass_digits} is beyond the end of peptide {context.clean_sequence}",
            )
            return

        terminus_state = context.residue_terminus_state(position)
        definition, _ = self.catalog.lookup_by_mass(
            mass,
            ModificationType.DYNAMIC,
            residue,
            terminus_state,
            self.mass_digits_of_precision,
            self.mass_digits_of_precision_loose,
        )
        self._add_modification(context, definition, residue, position, terminus_state, update_occurrence_counts)

    def _add_isotopic_mods(self, context: _PeptideContext, update_occurrence_counts: bool) -> None:
        if not context.clean_sequence:
            return
        for definition in self.catalog.definitions_of_type(ModificationType.ISOTOPIC):
            self._add_modification(
                context,
                definition,
                context.clean_sequence[0],
                1,
                TerminusState.NONE,
                update_occurrence_counts,
            )

    def _add_static_terminus_mods(self, context: _PeptideContext, update_occurrence_counts: bool) -> None:
        length = len(context.clean_sequence)
        if length == 0:
            return

        for definition in self.catalog.definitions:
            position = 0
            terminus_state = TerminusState.NONE

            if definition.mod_type == ModificationType.TERMINAL_PEPTIDE_STATIC:
                if definition.target_residues == N_TERMINAL_PEPTIDE_SYMBOL:
                    position = 1
                    if context.at_protein_n:
                        terminus_state = TerminusState.PROTEIN_N_TERMINUS
                    else:
                        terminus_state = TerminusState.PEPTIDE_N_TERMINUS
                elif definition.target_residues == C_TERMINAL_PEPTIDE_SYMBOL:
                    position = length
                    if context.at_protein_c:
                        terminus_state = TerminusState.PROTEIN_C_TERMINUS
                    else:
                        terminus_state = TerminusState.PEPTIDE_C_TERMINUS
            elif definition.mod_type == ModificationType.PROTEIN_TERMINUS_STATIC:
                if definition.target_residues == N_TERMINAL_PROTEIN_SYMBOL and context.at_protein_n:
                    position = 1
                    terminus_state = TerminusState.PROTEIN_N_TERMINUS
                elif definition.target_residues == C_TERMINAL_PROTEIN_SYMBOL and context.at_protein_c:
                    position = length
                    terminus_state = TerminusState.PROTEIN_C_TERMINUS

            if position == 0:
                continue
            if not self.allow_duplicate_mod_on_terminus and self._is_duplicate(context, definition, position):
                continue

            self._add_modification(
                context,
                definition,
                context.clean_sequence[position - 1],
                position,
                terminus_state,
                update_occurrence_counts,
            )

    @staticmethod
    def _is_duplicate(context: _PeptideContext, definition: ModificationDefinition, position: int) -> bool:
        for existing in context.modifications:
            if existing.definition.mod_id == definition.mod_id:
                return True
            if existing.position != position:
                continue
            if existing.definition.mass_correction_tag == definition.mass_correction_tag:
                return True
            if existing.definition.matches_mass(definition.mass, MASS_DIGITS_OF_PRECISION):
                return True
        return False

    def _add_modification(
        self,
        context: _PeptideContext,
        definition: ModificationDefinition,
        residue: str,
        position: int,
        terminus_state: TerminusState,
        update_occurrence_counts: bool,
    ) -> None:
        if position < 1 or position > len(context.clean_sequence):
            self._record_error(
                context,
                f"Invalid residue position {position} for modification "
                f"{definition.mass_correction_tag} ({definition.mod_type.name})",
            )
            return

        if update_occurrence_counts:
            self.catalog.increment_occurrence(definition)

        context.modifications.append(ResidueModification(definition, residue, position, terminus_state))

    @staticmethod
    def _record_error(context: _PeptideContext, message: str) -> None:
        error = ModificationResolutionError(
            f"{message}; ResultID = {context.result_id}", result_id=context.result_id
        )
        logger.debug(error.user_msg)
        context.errors.append(error)
