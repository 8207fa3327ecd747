"""
Modification definitions and the modification catalog.

The catalog holds the configured modifications (static, dynamic, terminal and
isotopic) and resolves masses reported by search tools to a definition,
auto-defining unknown modifications when nothing matches.
"""

import logging
import math
import os
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .constants import (
    C_TERMINAL_PEPTIDE_SYMBOL,
    C_TERMINAL_PROTEIN_SYMBOL,
    DEFAULT_MODIFICATION_SYMBOLS,
    INTEGER_MASS_CORRECTION_TAGS,
    LAST_RESORT_SYMBOL,
    MASS_CORRECTION_TAGS,
    MASS_DIGITS_OF_PRECISION,
    N_TERMINAL_PEPTIDE_SYMBOL,
    N_TERMINAL_PROTEIN_SYMBOL,
    NO_AFFECTED_ATOM,
    NO_SYMBOL,
    STANDARD_REFINEMENT_MODIFICATIONS,
    TERMINUS_SYMBOLS,
)
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ModificationType(Enum):
    """Modification types, valued by their one-letter code in definition files."""

    UNKNOWN = "?"
    DYNAMIC = "D"
    STATIC = "S"
    TERMINAL_PEPTIDE_STATIC = "T"
    ISOTOPIC = "I"
    PROTEIN_TERMINUS_STATIC = "P"

    @classmethod
    def from_code(cls, code: str) -> "ModificationType":
        """Convert a one-letter type code; anything unrecognized is UNKNOWN."""
        for mod_type in cls:
            if mod_type.value == code.strip().upper():
                return mod_type
        return cls.UNKNOWN

    @property
    def is_static(self) -> bool:
        return self in (
            ModificationType.STATIC,
            ModificationType.TERMINAL_PEPTIDE_STATIC,
            ModificationType.PROTEIN_TERMINUS_STATIC,
        )


class TerminusState(Enum):
    """Where a residue sits relative to the peptide and protein termini."""

    NONE = "None"
    PEPTIDE_N_TERMINUS = "PeptideNTerminus"
    PEPTIDE_C_TERMINUS = "PeptideCTerminus"
    PROTEIN_N_TERMINUS = "ProteinNTerminus"
    PROTEIN_C_TERMINUS = "ProteinCTerminus"
    PROTEIN_N_AND_C_TERMINUS = "ProteinNandCCTerminus"

    @property
    def is_n_terminal(self) -> bool:
        return self in (
            TerminusState.PEPTIDE_N_TERMINUS,
            TerminusState.PROTEIN_N_TERMINUS,
            TerminusState.PROTEIN_N_AND_C_TERMINUS,
        )

    @property
    def is_c_terminal(self) -> bool:
        return self in (TerminusState.PEPTIDE_C_TERMINUS, TerminusState.PROTEIN_C_TERMINUS)


@dataclass(frozen=True)
class ModificationDefinition:
    """
    A single configured or auto-defined modification.

    Attributes:
        mod_id: Catalog-assigned identifier, stable when targets are extended
        symbol: One-character symbol used in sequences with mods
        mass: Monoisotopic mass delta
        target_residues: Residue letters and/or terminus sentinels; empty means any
        mod_type: Modification type
        mass_correction_tag: Short modification name, e.g. Plus1Oxy
        affected_atom: Element for isotopic mods, NO_AFFECTED_ATOM otherwise
        auto_defined: True when created because a mass had no known definition
    """

    mod_id: int
    symbol: str
    mass: float
    target_residues: str
    mod_type: ModificationType
    mass_correction_tag: str
    affected_atom: str = NO_AFFECTED_ATOM
    auto_defined: bool = False

    def targets_contain(self, residue: str) -> bool:
        """True if residue is listed in the target residues."""
        return bool(residue) and residue in self.target_residues

    def matches_mass(self, mass: float, digits: int) -> bool:
        """Compare masses after rounding the difference to the given digits."""
        return round(abs(self.mass - mass), digits) == 0

    def equivalent(self, other: "ModificationDefinition") -> bool:
        """Same mass, type, tag and affected atom; target residues are ignored."""
        return (
            self.mod_type == other.mod_type
            and self.mass_correction_tag == other.mass_correction_tag
            and self.affected_atom == other.affected_atom
            and self.matches_mass(other.mass, MASS_DIGITS_OF_PRECISION)
        )


def generate_generic_mod_mass_name(mass: float) -> str:
    """
    Convert a modification mass into a generic 8 character name.

    The name starts with + or - followed by the mass, rounded to fit,
    e.g. 15.9949 gives "+15.9949" and -17.02655 gives "-17.0266".

    Args:
        mass: Modification mass

    Returns:
        Eight character mass name
    """
    if abs(mass) < 1e-7:
        return "+0.00000"
    if mass < -9999999:
        return "-9999999"
    if mass > 9999999:
        return "+9999999"

    log_mass = math.log10(abs(mass))
    if abs(log_mass - round(log_mass)) < 1e-7:
        # Power of 10
        integer_digits = int(round(log_mass)) + 1
    else:
        integer_digits = math.ceil(log_mass)
    integer_digits = max(integer_digits, 1)

    decimals = 6 - integer_digits
    while True:
        if decimals > 0:
            name = f"{mass:+.{decimals}f}"
        else:
            name = f"{mass:+.0f}"
        if len(name) <= 8 or decimals <= 0:
            break
        decimals -= 1

    if len(name) < 8 and "." not in name:
        name += "."
    return name.ljust(8, "0")


class ModificationCatalog:
    """
    Configured modification definitions with mass-based lookup.

    Static modifications are indexed by residue so that per-residue dispatch
    does not scan every definition; index order follows definition order.
    """

    def __init__(
        self,
        mass_digits_of_precision: int = MASS_DIGITS_OF_PRECISION,
        modification_symbols: str = DEFAULT_MODIFICATION_SYMBOLS,
    ):
        """
        Initialize an empty catalog.

        Args:
            mass_digits_of_precision: Default digits used when comparing masses
            modification_symbols: Symbols handed out to auto-defined dynamic mods
        """
        self.mass_digits_of_precision = mass_digits_of_precision
        self._modification_symbols = modification_symbols
        self._definitions: List[ModificationDefinition] = []
        self._occurrences: Dict[int, int] = {}
        self._static_index: Dict[str, List[ModificationDefinition]] = {}
        self._mass_correction_tags: Dict[str, float] = dict(MASS_CORRECTION_TAGS)
        self._available_symbols: deque = deque()
        self._next_id = 1
        self.clear()

    def __len__(self) -> int:
        return len(self._definitions)

    def __iter__(self):
        return iter(list(self._definitions))

    @property
    def definitions(self) -> Tuple[ModificationDefinition, ...]:
        return tuple(self._definitions)

    def clear(self) -> None:
        """Remove all definitions and reset the available symbol queue."""
        self._definitions = []
        self._occurrences = {}
        self._static_index = {}
        self._available_symbols = deque()
        for symbol in self._modification_symbols:
            if symbol in (LAST_RESORT_SYMBOL, NO_SYMBOL) or symbol in self._available_symbols:
                continue
            self._available_symbols.append(symbol)

    def _rebuild_static_index(self) -> None:
        self._static_index = {}
        for definition in self._definitions:
            if definition.mod_type != ModificationType.STATIC:
                continue
            for residue in definition.target_residues:
                self._static_index.setdefault(residue, []).append(definition)

    def _replace(self, old: ModificationDefinition, new: ModificationDefinition) -> None:
        for index, definition in enumerate(self._definitions):
            if definition.mod_id == old.mod_id:
                self._definitions[index] = new
                break
        self._rebuild_static_index()

    def _claim_symbol(self, use_next_symbol: bool, default: str) -> str:
        if use_next_symbol and self._available_symbols:
            return self._available_symbols.popleft()
        return default

    def add_definition(
        self,
        mass: float,
        target_residues: str = "",
        mod_type: ModificationType = ModificationType.DYNAMIC,
        mass_correction_tag: Optional[str] = None,
        symbol: str = NO_SYMBOL,
        affected_atom: str = NO_AFFECTED_ATOM,
        use_next_symbol: bool = False,
        auto_defined: bool = False,
    ) -> ModificationDefinition:
        """
        Add a definition, merging it into an equivalent one when present.

        Static or dynamic definitions that match an existing one in mass, type,
        tag and affected atom extend the existing target residues instead of
        being added twice.

        Args:
            mass: Monoisotopic mass delta
            target_residues: Residues and/or terminus sentinels
            mod_type: Modification type
            mass_correction_tag: Name; looked up by mass when None
            symbol: Symbol to use when use_next_symbol is False
            affected_atom: Element for isotopic mods
            use_next_symbol: Take the next free symbol from the symbol queue
            auto_defined: Mark as auto-defined

        Returns:
            The stored definition

        Raises:
            ConfigurationError: If the definition is inconsistent
        """
        target_residues = target_residues.strip()
        if mod_type == ModificationType.UNKNOWN:
            mod_type = ModificationType.DYNAMIC

        # A static mod on a single terminus sentinel is a terminal static mod
        if mod_type == ModificationType.STATIC and len(target_residues) == 1:
            if target_residues in (N_TERMINAL_PEPTIDE_SYMBOL, C_TERMINAL_PEPTIDE_SYMBOL):
                mod_type = ModificationType.TERMINAL_PEPTIDE_STATIC
            elif target_residues in (N_TERMINAL_PROTEIN_SYMBOL, C_TERMINAL_PROTEIN_SYMBOL):
                mod_type = ModificationType.PROTEIN_TERMINUS_STATIC

        if mod_type == ModificationType.ISOTOPIC:
            if not affected_atom or affected_atom == NO_AFFECTED_ATOM:
                raise ConfigurationError(
                    f"Isotopic modification {mass} requires an affected atom"
                )
            symbol = NO_SYMBOL
        elif mod_type == ModificationType.TERMINAL_PEPTIDE_STATIC:
            if target_residues not in (N_TERMINAL_PEPTIDE_SYMBOL, C_TERMINAL_PEPTIDE_SYMBOL):
                raise ConfigurationError(
                    f"Peptide terminus static modification {mass} must target "
                    f"'{N_TERMINAL_PEPTIDE_SYMBOL}' or '{C_TERMINAL_PEPTIDE_SYMBOL}', not '{target_residues}'"
                )
            symbol = NO_SYMBOL
        elif mod_type == ModificationType.PROTEIN_TERMINUS_STATIC:
            if target_residues not in (N_TERMINAL_PROTEIN_SYMBOL, C_TERMINAL_PROTEIN_SYMBOL):
                raise ConfigurationError(
                    f"Protein terminus static modification {mass} must target "
                    f"'{N_TERMINAL_PROTEIN_SYMBOL}' or '{C_TERMINAL_PROTEIN_SYMBOL}', not '{target_residues}'"
                )
            symbol = NO_SYMBOL

        if not mass_correction_tag:
            mass_correction_tag = self.lookup_mass_correction_tag(mass)

        candidate = ModificationDefinition(
            mod_id=0,
            symbol=symbol,
            mass=mass,
            target_residues=target_residues,
            mod_type=mod_type,
            mass_correction_tag=mass_correction_tag,
            affected_atom=affected_atom,
            auto_defined=auto_defined,
        )

        for existing in self._definitions:
            if not existing.equivalent(candidate):
                continue
            if not use_next_symbol and symbol != existing.symbol:
                # Same chemistry under a different symbol is kept separate
                continue
            if existing.mod_type in (ModificationType.DYNAMIC, ModificationType.STATIC):
                missing = "".join(r for r in target_residues if r not in existing.target_residues)
                if missing:
                    merged = replace(existing, target_residues=existing.target_residues + missing)
                    self._replace(existing, merged)
                    return merged
            return existing

        candidate = replace(
            candidate,
            mod_id=self._next_id,
            symbol=self._claim_symbol(use_next_symbol, symbol),
        )
        self._next_id += 1
        self._definitions.append(candidate)
        self._occurrences[candidate.mod_id] = 0
        if candidate.mod_type == ModificationType.STATIC:
            self._rebuild_static_index()

        logger.debug(
            f"Added modification {candidate.mass_correction_tag} ({candidate.mass:+.4f}) "
            f"type {candidate.mod_type.name} on '{candidate.target_residues}'"
        )
        return candidate

    def static_mods_for(self, residue: str) -> List[ModificationDefinition]:
        """Static residue modifications targeting residue, in definition order."""
        return list(self._static_index.get(residue, []))

    def definitions_of_type(self, mod_type: ModificationType) -> List[ModificationDefinition]:
        return [d for d in self._definitions if d.mod_type == mod_type]

    def get(self, mod_id: int) -> ModificationDefinition:
        """Current version of a definition, by id."""
        for definition in self._definitions:
            if definition.mod_id == mod_id:
                return definition
        raise KeyError(f"No modification with id {mod_id}")

    def lookup_by_mass(
        self,
        mass: float,
        mod_type: ModificationType = ModificationType.DYNAMIC,
        residue: str = "",
        terminus_state: TerminusState = TerminusState.NONE,
        digits: Optional[int] = None,
        digits_loose: Optional[int] = None,
    ) -> Tuple[ModificationDefinition, bool]:
        """
        Resolve a mass to a modification definition of the given type.

        Search order: definitions whose targets contain the residue (or the
        terminus sentinel for the terminus state), definitions with no target
        residues, the standard refinement losses, definitions of the same type
        regardless of residue (the residue is then added to their targets).
        When nothing matches, an unknown modification is auto-defined.

        Args:
            mass: Modification mass to resolve
            mod_type: Requested modification type
            residue: Residue carrying the modification, empty if unknown
            terminus_state: Terminus state of that residue
            digits: Digits of precision for mass comparison
            digits_loose: Loosest digits used when naming an unknown modification

        Returns:
            Tuple of (definition, found_existing); found_existing is False only
            when the definition was auto-defined by this call
        """
        if digits is None:
            digits = self.mass_digits_of_precision
        if digits_loose is None:
            digits_loose = digits

        same_type = [d for d in self._definitions if d.mod_type == mod_type]

        if residue or terminus_state != TerminusState.NONE:
            for definition in same_type:
                if not definition.target_residues or not definition.matches_mass(mass, digits):
                    continue
                if definition.targets_contain(residue):
                    return definition, True
                if terminus_state.is_n_terminal and definition.targets_contain(N_TERMINAL_PEPTIDE_SYMBOL):
                    return definition, True
                if terminus_state.is_c_terminal and definition.targets_contain(C_TERMINAL_PEPTIDE_SYMBOL):
                    return definition, True

        for definition in same_type:
            if not definition.target_residues and definition.matches_mass(mass, digits):
                return definition, True

        if residue and residue not in TERMINUS_SYMBOLS:
            for target, refinement_mass in STANDARD_REFINEMENT_MODIFICATIONS:
                if target == residue and round(abs(refinement_mass - mass), digits) == 0:
                    definition = self.add_definition(
                        refinement_mass,
                        target,
                        mod_type,
                        symbol=NO_SYMBOL if mod_type.is_static else LAST_RESORT_SYMBOL,
                        use_next_symbol=not mod_type.is_static,
                    )
                    return definition, True

        for definition in same_type:
            if not definition.matches_mass(mass, digits):
                continue
            if residue and not definition.targets_contain(residue):
                extended = replace(definition, target_residues=definition.target_residues + residue)
                self._replace(definition, extended)
                return extended, True
            return definition, True

        return self._add_unknown_modification(mass, mod_type, residue, terminus_state, digits, digits_loose), False

    def _add_unknown_modification(
        self,
        mass: float,
        mod_type: ModificationType,
        residue: str,
        terminus_state: TerminusState,
        digits: int,
        digits_loose: int,
    ) -> ModificationDefinition:
        target_residues = residue
        if terminus_state.is_n_terminal:
            target_residues = N_TERMINAL_PEPTIDE_SYMBOL
        elif terminus_state.is_c_terminal:
            target_residues = C_TERMINAL_PEPTIDE_SYMBOL

        tag = self.lookup_mass_correction_tag(mass, digits, digits_loose)
        static = mod_type.is_static

        if mod_type in (ModificationType.TERMINAL_PEPTIDE_STATIC, ModificationType.PROTEIN_TERMINUS_STATIC):
            # Terminal static types need a terminus target; fall back to a plain static mod
            if target_residues not in TERMINUS_SYMBOLS or len(target_residues) != 1:
                mod_type = ModificationType.STATIC

        definition = self.add_definition(
            mass,
            target_residues,
            mod_type,
            mass_correction_tag=tag,
            symbol=NO_SYMBOL if static else LAST_RESORT_SYMBOL,
            use_next_symbol=not static,
            auto_defined=True,
        )
        logger.debug(
            f"Auto-defined modification {definition.mass_correction_tag} "
            f"({mass:+.4f}) on '{definition.target_residues}' with symbol {definition.symbol}"
        )
        return definition

    def lookup_mass_correction_tag(
        self,
        mass: float,
        digits: Optional[int] = None,
        digits_loose: int = 1,
        register_unknown: bool = True,
    ) -> str:
        """
        Find the name of the known modification closest to mass.

        Precision is relaxed one digit at a time from digits down to
        digits_loose; at zero digits the integer mass table is consulted first.
        Masses with no match get a generic name such as "+15.9949".

        Args:
            mass: Modification mass
            digits: Starting digits of precision
            digits_loose: Loosest digits of precision tried
            register_unknown: Remember generated names for later lookups

        Returns:
            Mass correction tag
        """
        if digits is None:
            digits = self.mass_digits_of_precision
        stop = min(digits, digits_loose)

        for precision in range(digits, stop - 1, -1):
            if stop == 0:
                for integer_mass, tag in INTEGER_MASS_CORRECTION_TAGS.items():
                    if abs(mass - integer_mass) < 0.0001:
                        return tag

            closest_tag = ""
            closest_diff = float("inf")
            for tag, tag_mass in self._mass_correction_tags.items():
                diff = abs(mass - tag_mass)
                if diff < closest_diff:
                    closest_tag = tag
                    closest_diff = diff

            if closest_tag and round(closest_diff, precision) == 0:
                return closest_tag

        generic_name = generate_generic_mod_mass_name(mass)
        if register_unknown:
            if generic_name in self._mass_correction_tags:
                logger.warning(
                    f"Ignoring duplicate mass correction tag: {generic_name}, mass {mass:.3f}"
                )
            else:
                self._mass_correction_tags[generic_name] = mass
        return generic_name

    # Occurrence bookkeeping

    def increment_occurrence(self, definition: ModificationDefinition, count: int = 1) -> None:
        self._occurrences[definition.mod_id] = self._occurrences.get(definition.mod_id, 0) + count

    def occurrence_count(self, definition: ModificationDefinition) -> int:
        return self._occurrences.get(definition.mod_id, 0)

    def reset_occurrence_counts(self) -> None:
        for mod_id in self._occurrences:
            self._occurrences[mod_id] = 0

    def summary_records(self) -> List[dict]:
        """
        Build the modification summary, one record per definition.

        Auto-defined modifications that were never used are left out.

        Returns:
            List of dicts keyed by the modification summary column names
        """
        records = []
        for definition in self._definitions:
            count = self.occurrence_count(definition)
            if definition.auto_defined and count <= 0:
                continue
            records.append(
                {
                    "Modification_Symbol": definition.symbol,
                    "Modification_Mass": f"{definition.mass:.6f}",
                    "Target_Residues": definition.target_residues,
                    "Modification_Type": definition.mod_type.value,
                    "Mass_Correction_Tag": definition.mass_correction_tag,
                    "Occurrence_Count": count,
                }
            )
        return records

    # Definition files

    def parse_definition_line(self, line: str) -> Optional[ModificationDefinition]:
        """
        Parse one line of a modification definitions file and add it.

        Columns (tab-delimited): symbol, mass, target residues, type code,
        mass correction tag, affected atom. Only symbol and mass are required.
        Blank lines, comments and lines whose first two columns are not a
        symbol and a number are ignored.

        Returns:
            The added definition, or None if the line was ignored
        """
        if not line.strip() or line.lstrip().startswith("#"):
            return None

        fields = line.rstrip("\r\n").split("\t")
        if len(fields) < 2 or len(fields[0].strip()) != 1:
            return None
        try:
            mass = float(fields[1])
        except ValueError:
            return None

        symbol = fields[0].strip()
        residues = ""
        if len(fields) >= 3:
            residues = "".join(
                r for r in fields[2].strip().upper() if r.isalpha() or r in TERMINUS_SYMBOLS
            )
        mod_type = ModificationType.DYNAMIC
        if len(fields) >= 4 and len(fields[3].strip()) == 1:
            mod_type = ModificationType.from_code(fields[3])
        tag = fields[4].strip() if len(fields) >= 5 else None
        affected_atom = NO_AFFECTED_ATOM
        if len(fields) >= 6 and fields[5].strip():
            affected_atom = fields[5].strip()[0]

        return self.add_definition(
            mass,
            residues,
            mod_type,
            mass_correction_tag=tag or None,
            symbol=symbol,
            affected_atom=affected_atom,
        )

    def load_definitions_file(self, file_path: str) -> int:
        """
        Replace the catalog contents with the definitions in a file.

        Args:
            file_path: Path to the tab-delimited modification definitions file

        Returns:
            Number of definitions loaded

        Raises:
            ConfigurationError: If the file is missing or a definition is invalid
        """
        if not os.path.exists(file_path):
            raise ConfigurationError(f"Modification definition file not found: {file_path}")

        self.clear()
        with open(file_path, "r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                try:
                    self.parse_definition_line(line)
                except ConfigurationError as e:
                    raise ConfigurationError(
                        f"Invalid modification definition in {file_path}",
                        detail_msg=f"Line {line_number}: {e.user_msg} ({line.strip()})",
                    ) from e

        logger.info(f"Loaded {len(self._definitions)} modification definitions from {file_path}")
        return len(self._definitions)
