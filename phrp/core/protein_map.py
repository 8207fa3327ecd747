"""
Peptide to protein coordinate mapping.

The coordinate table is produced by an external peptide to protein search
and lists, for every peptide, each protein it occurs in with the residue
range of the match. Rows are kept sorted by peptide then protein so all
proteins of a peptide can be found with one binary search.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from .constants import PROTEIN_NAME_NO_MATCH
from .exceptions import ConfigurationError
from .reporting import show_periodic_warning

logger = logging.getLogger(__name__)

_PROTEIN_NAME_POSITION = re.compile(r"(.+)\[([^\]]+)\]")

COORDINATE_COLUMNS = ["Peptide", "Protein", "ResidueStart", "ResidueEnd"]


@dataclass(frozen=True)
class ProteinCoordinate:
    """
    One peptide occurrence within a protein.

    Residue numbers are 1-based and inclusive.
    """

    peptide: str
    protein: str
    residue_start: int
    residue_end: int


def parse_protein_list(protein_list: str) -> List[Tuple[str, str]]:
    """
    Split a semicolon separated protein list into names and peptide positions.

    Args:
        protein_list: Text such as "P1[K.196~206.Q(2)];P2"

    Returns:
        List of (protein name, position annotation) tuples; the annotation
        is empty when the entry has none
    """
    if not protein_list:
        return []

    proteins = []
    for entry in protein_list.split(";"):
        entry = entry.strip()
        if not entry:
            continue
        match = _PROTEIN_NAME_POSITION.match(entry)
        if match:
            proteins.append((match.group(1), match.group(2)))
        else:
            proteins.append((entry, ""))
    return proteins


def _is_int(text: str) -> bool:
    try:
        int(text)
    except (TypeError, ValueError):
        return False
    return True


def _to_int(text: str) -> int:
    return int(text) if _is_int(text) else 0


def load_coordinate_table(file_path: str) -> List[ProteinCoordinate]:
    """
    Read a tab-delimited peptide to protein coordinate file.

    Columns are Peptide, Protein, ResidueStart, ResidueEnd. The first line is
    treated as a header when its third column is not an integer. Lines with
    fewer than four columns are skipped and columns past the fourth ignored.

    Returns:
        Coordinates sorted by peptide, then protein

    Raises:
        ConfigurationError: If the file does not exist or has fewer than four columns
    """
    if not os.path.exists(file_path):
        raise ConfigurationError(f"Peptide to protein map file not found: {file_path}")

    if os.path.getsize(file_path) == 0:
        logger.warning(f"Peptide to protein map file is empty: {file_path}")
        return []

    # Fixed columns so lines with extra fields do not change the field count
    try:
        frame = pd.read_csv(
            file_path,
            sep="\t",
            header=None,
            names=COORDINATE_COLUMNS,
            usecols=range(len(COORDINATE_COLUMNS)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        ).fillna("")
    except ValueError as e:
        raise ConfigurationError(
            f"Peptide to protein map file has fewer than {len(COORDINATE_COLUMNS)} columns: {file_path}",
            detail_msg=str(e),
        ) from e

    if len(frame) and not _is_int(frame.iat[0, 2].strip()):
        logger.debug(f"Header line in {file_path}: {list(frame.iloc[0])}")
        frame = frame.iloc[1:]

    frame = frame[frame["ResidueEnd"].str.strip() != ""]

    table = [
        ProteinCoordinate(
            peptide=row.Peptide.strip(),
            protein=row.Protein.strip(),
            residue_start=_to_int(row.ResidueStart.strip()),
            residue_end=_to_int(row.ResidueEnd.strip()),
        )
        for row in frame.itertuples(index=False)
    ]
    table.sort(key=lambda c: (c.peptide, c.protein))

    logger.info(f"Loaded {len(table)} peptide to protein coordinates from {file_path}")
    return table


def find_first_match(sorted_table: Sequence[ProteinCoordinate], peptide: str) -> int:
    """
    Index of the first row for a peptide in a table sorted by peptide.

    A binary search finds any row for the peptide, then the search steps
    backward to the first one, so scanning forward from the returned index
    visits every protein of the peptide exactly once.

    Returns:
        Row index, or -1 if the peptide is not in the table
    """
    low, high = 0, len(sorted_table) - 1
    index = -1
    while low <= high:
        middle = (low + high) // 2
        current = sorted_table[middle].peptide
        if current == peptide:
            index = middle
            break
        if current < peptide:
            low = middle + 1
        else:
            high = middle - 1

    if index < 0:
        return -1

    while index > 0 and sorted_table[index - 1].peptide == peptide:
        index -= 1
    return index


def find_matches(sorted_table: Sequence[ProteinCoordinate], peptide: str) -> Iterator[ProteinCoordinate]:
    """Yield every row of the table for a peptide."""
    index = find_first_match(sorted_table, peptide)
    if index < 0:
        return
    while index < len(sorted_table) and sorted_table[index].peptide == peptide:
        yield sorted_table[index]
        index += 1


def count_unmatched_peptides(table: Iterable[ProteinCoordinate]) -> Tuple[int, int]:
    """
    Count distinct peptides and those the protein search could not place.

    Returns:
        Tuple of (peptide count, peptides mapped to the no-match placeholder)
    """
    peptides = set()
    unmatched = set()
    for coordinate in table:
        peptides.add(coordinate.peptide)
        if coordinate.protein == PROTEIN_NAME_NO_MATCH:
            unmatched.add(coordinate.peptide)
    return len(peptides), len(unmatched)


class PeptideProteinCoordinateMapper:
    """
    Looks up protein coordinates for peptides.

    Args:
        table: Coordinates; sorted by peptide then protein on construction
        is_reversed_protein: Predicate used to skip decoy proteins in
            protein_mod_details
    """

    def __init__(self, table: Optional[Iterable[ProteinCoordinate]] = None, is_reversed_protein=None):
        self.table: List[ProteinCoordinate] = sorted(table or [], key=lambda c: (c.peptide, c.protein))
        self.is_reversed_protein = is_reversed_protein
        self.missing_peptide_count = 0

    @classmethod
    def from_file(cls, file_path: str, **kwargs) -> "PeptideProteinCoordinateMapper":
        mapper = cls(load_coordinate_table(file_path), **kwargs)
        peptide_count, unmatched = mapper.no_match_statistics()
        if unmatched:
            percent = unmatched / peptide_count * 100.0
            logger.warning(
                f"{percent:.2f}% of the entries ({unmatched} / {peptide_count}) in {os.path.basename(file_path)} "
                f"did not match to a protein"
            )
        return mapper

    def __len__(self) -> int:
        return len(self.table)

    def no_match_statistics(self) -> Tuple[int, int]:
        return count_unmatched_peptides(self.table)

    def find_first_match(self, peptide: str) -> int:
        return find_first_match(self.table, peptide)

    def find_matches(self, peptide: str) -> List[ProteinCoordinate]:
        """
        All coordinates of a peptide.

        A peptide missing from the table is reported with a throttled
        warning and yields an empty list.
        """
        matches = list(find_matches(self.table, peptide))
        if not matches:
            self.missing_peptide_count += 1
            show_periodic_warning(
                logger,
                self.missing_peptide_count,
                f"Peptide not found in peptide to protein mapping: {peptide}",
            )
        return matches

    def protein_mod_details(
        self,
        peptide: str,
        modifications: Iterable,
        include_reversed: bool = False,
        matches: Optional[List[ProteinCoordinate]] = None,
        result_id: int = 0,
        unique_seq_id: int = 0,
    ) -> List[Dict]:
        """
        Locate each modification of a peptide within every protein it maps to.

        Args:
            peptide: Clean peptide sequence
            modifications: ResidueModification records
            include_reversed: Also report decoy proteins
            matches: Coordinates already looked up for the peptide
            result_id: ResultID of the hit the modifications belong to
            unique_seq_id: Unique sequence id of the modified peptide

        Returns:
            One dict per (protein, modification) with the protein residue
            number, computed as residue_start + position - 1
        """
        modifications = list(modifications)
        details = []
        if matches is None:
            matches = self.find_matches(peptide)
        for coordinate in matches:
            if coordinate.protein == PROTEIN_NAME_NO_MATCH:
                continue
            if (
                not include_reversed
                and self.is_reversed_protein is not None
                and self.is_reversed_protein(coordinate.protein)
            ):
                continue
            for modification in modifications:
                details.append(
                    {
                        "ResultID": result_id,
                        "Peptide": peptide,
                        "Unique_Seq_ID": unique_seq_id,
                        "Protein": coordinate.protein,
                        "Residue": modification.residue,
                        "Position": modification.position,
                        "Protein_Residue_Num": coordinate.residue_start + modification.position - 1,
                        "Mod_Name": modification.definition.mass_correction_tag,
                        "Mod_Mass": modification.definition.mass,
                    }
                )
        return details
