"""
Run-wide registry of unique modified sequences.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UniqueSequenceEntry:
    """
    A distinct (clean sequence, modification description) pair.

    Attributes:
        unique_seq_id: Id assigned in first-seen order, starting at 1
        clean_sequence: Peptide letters only
        mod_description: Modification description, e.g. "Plus1Oxy:1"
        mod_count: Number of modifications
        monoisotopic_mass: Monoisotopic mass of the modified peptide
    """

    unique_seq_id: int
    clean_sequence: str
    mod_description: str
    mod_count: int = 0
    monoisotopic_mass: float = 0.0

    @property
    def key(self) -> Tuple[str, str]:
        return (self.clean_sequence, self.mod_description)


class SequenceDeduplicator:
    """
    Assigns stable integer ids to unique modified sequences.

    Two peptides with the same clean sequence but different localized
    modifications get different ids. Not thread-safe; one instance serves
    one run.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], UniqueSequenceEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return key in self._entries

    def get_or_create_id(
        self,
        clean_sequence: str,
        mod_description: str,
        mass: float = 0.0,
        mod_count: int = 0,
    ) -> Tuple[int, bool]:
        """
        Look up or register a sequence.

        Mass and mod count are stored only when the entry is created.

        Returns:
            Tuple of (unique sequence id, True if it was already registered)
        """
        key = (clean_sequence, mod_description)
        entry = self._entries.get(key)
        if entry is not None:
            return entry.unique_seq_id, True

        entry = UniqueSequenceEntry(
            unique_seq_id=len(self._entries) + 1,
            clean_sequence=clean_sequence,
            mod_description=mod_description,
            mod_count=mod_count,
            monoisotopic_mass=mass,
        )
        self._entries[key] = entry
        return entry.unique_seq_id, False

    def entries(self) -> List[UniqueSequenceEntry]:
        """Registered sequences in id order."""
        return sorted(self._entries.values(), key=lambda e: e.unique_seq_id)

    def clear(self) -> None:
        logger.debug(f"Clearing {len(self._entries)} unique sequences")
        self._entries.clear()
