"""
Reading raw hit tables and writing the synopsis and summary files.
"""

import logging
import math
import os
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .constants import MOD_SUMMARY_COLUMNS, OUTPUT_COLUMNS
from .exceptions import ConfigurationError
from .pipeline import RawHit
from .sequences import UniqueSequenceEntry

logger = logging.getLogger(__name__)

# Input columns; the score column name is configurable
REQUIRED_INPUT_COLUMNS = ["Scan", "Charge", "PrecursorMZ", "Peptide"]
OPTIONAL_INPUT_COLUMNS = {"ResultID": "", "Protein": "", "Mass": "0", "MH": "0"}

SEQ_INFO_COLUMNS = ["Unique_Seq_ID", "Mod_Count", "Mod_Description", "Monoisotopic_Mass"]
RESULT_TO_SEQ_MAP_COLUMNS = ["ResultID", "Unique_Seq_ID"]
SEQ_TO_PROTEIN_MAP_COLUMNS = ["Unique_Seq_ID", "Protein_Name", "Peptide_Position"]
PROTEIN_MODS_COLUMNS = [
    "ResultID",
    "Peptide",
    "Unique_Seq_ID",
    "Protein",
    "Residue",
    "Position",
    "Protein_Residue_Num",
    "Mod_Name",
    "Mod_Mass",
]


def _to_float(text: str) -> float:
    try:
        return float(text)
    except (TypeError, ValueError):
        return math.nan


def _to_int(text: str, default: int = -1) -> int:
    try:
        return int(float(text))
    except (TypeError, ValueError):
        return default


def read_raw_hits(file_path: str, score_column: str) -> List[RawHit]:
    """
    Read a tab-delimited raw hit table.

    Required columns are Scan, Charge, PrecursorMZ, Peptide and the score
    column; ResultID, Protein, Mass and MH are optional. Values that do not
    parse become invalid fields, which the pipeline reports and skips.

    Args:
        file_path: Path to the table
        score_column: Name of the score column

    Returns:
        Raw hits in file order

    Raises:
        ConfigurationError: If the file or a required column is missing
    """
    if not os.path.exists(file_path):
        raise ConfigurationError(f"Input file not found: {file_path}")

    frame = pd.read_csv(file_path, sep="\t", dtype=str, keep_default_na=False).fillna("")

    missing = [c for c in REQUIRED_INPUT_COLUMNS + [score_column] if c not in frame.columns]
    if missing:
        raise ConfigurationError(
            f"Input file is missing required columns: {', '.join(missing)}",
            detail_msg=f"Columns found: {', '.join(frame.columns)}",
        )

    for column, default in OPTIONAL_INPUT_COLUMNS.items():
        if column not in frame.columns:
            frame[column] = default

    hits = []
    for index, row in enumerate(frame.to_dict("records")):
        # Header is line 1
        line_number = index + 2
        hits.append(
            RawHit(
                result_id=_to_int(row["ResultID"], default=index + 1),
                scan=_to_int(row["Scan"]),
                charge=_to_int(row["Charge"]),
                precursor_mz=_to_float(row["PrecursorMZ"]),
                peptide=row["Peptide"].strip(),
                protein=row["Protein"].strip(),
                score=_to_float(row[score_column]),
                tool_mass=_to_float(row["Mass"]) if row["Mass"] else 0.0,
                mh=_to_float(row["MH"]) if row["MH"] else 0.0,
                line_number=line_number,
            )
        )

    logger.info(f"Read {len(hits)} hits from {file_path}")
    return hits


def output_base(output_path: str) -> str:
    """Output path without its extension, used to name companion files."""
    return os.path.splitext(output_path)[0]


def write_synopsis(rows: Iterable[Dict], output_path: str) -> None:
    frame = pd.DataFrame(list(rows), columns=OUTPUT_COLUMNS)
    frame.to_csv(output_path, sep="\t", index=False)
    logger.info(f"Wrote {len(frame)} rows to {output_path}")


def write_mod_summary(records: Iterable[Dict], output_path: str) -> str:
    """Write the modification summary next to output_path; returns its path."""
    path = f"{output_base(output_path)}_ModSummary.txt"
    pd.DataFrame(list(records), columns=MOD_SUMMARY_COLUMNS).to_csv(path, sep="\t", index=False)
    return path


def write_seq_info(entries: Iterable[UniqueSequenceEntry], output_path: str) -> str:
    """Write the unique sequence table next to output_path; returns its path."""
    path = f"{output_base(output_path)}_SeqInfo.txt"
    records = [
        {
            "Unique_Seq_ID": entry.unique_seq_id,
            "Mod_Count": entry.mod_count,
            "Mod_Description": entry.mod_description,
            "Monoisotopic_Mass": f"{entry.monoisotopic_mass:.6f}",
        }
        for entry in entries
    ]
    pd.DataFrame(records, columns=SEQ_INFO_COLUMNS).to_csv(path, sep="\t", index=False)
    return path


def write_protein_mods(details: Iterable[Dict], output_path: str) -> Optional[str]:
    """
    Write the protein-level modification details next to output_path.

    Returns:
        Path of the written file, or None when there are no details
    """
    details = list(details)
    if not details:
        return None
    path = f"{output_base(output_path)}_ProteinMods.txt"
    pd.DataFrame(details, columns=PROTEIN_MODS_COLUMNS).to_csv(path, sep="\t", index=False)
    return path


def write_sequence_maps(
    result_to_seq_map: Iterable[Dict], seq_to_protein_map: Iterable[Dict], output_path: str
) -> List[str]:
    """
    Write the ResultID to sequence and sequence to protein maps.

    The synopsis ResultID joins to _ResultToSeqMap.txt, whose Unique_Seq_ID
    joins to _SeqInfo.txt and _SeqToProteinMap.txt.

    Returns:
        Paths of the two written files
    """
    base = output_base(output_path)
    result_to_seq_path = f"{base}_ResultToSeqMap.txt"
    seq_to_protein_path = f"{base}_SeqToProteinMap.txt"

    pd.DataFrame(list(result_to_seq_map), columns=RESULT_TO_SEQ_MAP_COLUMNS).to_csv(
        result_to_seq_path, sep="\t", index=False
    )
    pd.DataFrame(list(seq_to_protein_map), columns=SEQ_TO_PROTEIN_MAP_COLUMNS).to_csv(
        seq_to_protein_path, sep="\t", index=False
    )
    return [result_to_seq_path, seq_to_protein_path]
