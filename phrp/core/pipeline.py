"""
Per-file processing pipeline.

HitProcessor combines the engine components into one pass over a run's raw
hits: group, rank and filter, estimate FDR, annotate and recompute masses,
deduplicate sequences, attach protein coordinates, and build the canonical
output rows.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from .annotator import AnnotatedPeptide, ResidueModAnnotator
from .constants import OUTPUT_COLUMNS, UNKNOWN_PROTEIN, build_config
from .exceptions import MalformedRecordError
from .fdr import FDRQValueEstimator
from .mass import MassComputationService, convolute_mass, mz_to_neutral_mass
from .modifications import ModificationCatalog
from .protein_map import PeptideProteinCoordinateMapper, parse_protein_list
from .ranking import RankedHit, RankingAndFilterEngine
from .reporting import ErrorLog, ProcessingStatus
from .sequences import SequenceDeduplicator, UniqueSequenceEntry

logger = logging.getLogger(__name__)

# Report progress every this many hits
STATUS_INTERVAL = 500


@dataclass
class RawHit:
    """
    One candidate identification as read from a search tool's output.

    Attributes:
        result_id: Identifier of the record in the input, used in messages
        scan: Scan number
        charge: Precursor charge
        precursor_mz: Observed precursor m/z (0 when unknown)
        peptide: Peptide in the tool's notation, with prefix and suffix
            residues, e.g. "K.PEP+15.995TIDE.R"
        protein: Protein list, e.g. "P1[K.196~206.Q(2)];P2"
        score: Score used for ranking and filtering
        tool_mass: Monoisotopic mass reported by the tool (0 when absent)
        mh: (M+H)+ reported by the tool (0 when absent)
        line_number: Line of the input file the hit came from
    """

    result_id: int
    scan: int
    charge: int
    precursor_mz: float
    peptide: str
    protein: str
    score: float
    tool_mass: float = 0.0
    mh: float = 0.0
    line_number: int = 0


@dataclass
class ProcessingResult:
    """Output of HitProcessor.process."""

    rows: List[Dict] = field(default_factory=list)
    unique_sequences: List[UniqueSequenceEntry] = field(default_factory=list)
    result_to_seq_map: List[Dict] = field(default_factory=list)
    seq_to_protein_map: List[Dict] = field(default_factory=list)
    mod_summary: List[Dict] = field(default_factory=list)
    protein_mod_details: List[Dict] = field(default_factory=list)
    error_log: ErrorLog = field(default_factory=ErrorLog)
    input_count: int = 0
    valid_count: int = 0
    filtered_count: int = 0
    aborted: bool = False


def validate_raw_hit(hit: RawHit) -> None:
    """
    Check the required fields of a raw hit.

    Raises:
        MalformedRecordError: If a required field is missing or unusable
    """
    if not hit.peptide or not str(hit.peptide).strip():
        raise MalformedRecordError(f"Peptide is empty for ResultID {hit.result_id}", hit.line_number)
    if hit.scan is None or hit.scan < 0:
        raise MalformedRecordError(f"Invalid scan number for ResultID {hit.result_id}", hit.line_number)
    if hit.charge is None or hit.charge < 0:
        raise MalformedRecordError(f"Invalid charge for ResultID {hit.result_id}", hit.line_number)
    if hit.score is None or math.isnan(hit.score):
        raise MalformedRecordError(f"Score is not a number for ResultID {hit.result_id}", hit.line_number)


class HitProcessor:
    """
    Runs the engine over the raw hits of one file.

    The catalog's occurrence counts and the unique sequence registry are
    reset at the start of every process call. A processor handles one run
    at a time.

    Args:
        catalog: Modification catalog
        config: Configuration dict (see DEFAULT_CONFIG); missing keys take defaults
        coordinate_table: Peptide to protein coordinates, or a ready mapper
    """

    def __init__(self, catalog: ModificationCatalog, config: Optional[Dict] = None, coordinate_table=None):
        self.catalog = catalog
        self.config = build_config(**(config or {}))
        self.logger = logging.getLogger(__name__)

        self.annotator = ResidueModAnnotator(
            catalog,
            notation=self.config["notation"],
            mass_digits_of_precision=self.config["mass_digits_of_precision"],
            mass_digits_of_precision_loose=self.config["mass_digits_of_precision_loose"],
            allow_duplicate_mod_on_terminus=self.config["allow_duplicate_mod_on_terminus"],
        )
        self.mass_service = MassComputationService(mass_check_enabled=self.config["mass_check_enabled"])
        self.ranking = RankingAndFilterEngine(
            higher_is_better=self.config["higher_is_better"],
            tie_epsilon=self.config["tie_epsilon"],
            group_by_charge=self.config["group_by_charge"],
            synopsis_threshold=self.config["synopsis_threshold"],
        )
        self.fdr = FDRQValueEstimator(self.config["decoy_prefixes"], self.config["decoy_suffixes"])
        self.deduplicator = SequenceDeduplicator()
        self._seq_to_protein_seen = set()

        if coordinate_table is None or isinstance(coordinate_table, PeptideProteinCoordinateMapper):
            self.mapper = coordinate_table
        else:
            self.mapper = PeptideProteinCoordinateMapper(coordinate_table)
        if self.mapper is not None and self.mapper.is_reversed_protein is None:
            self.mapper.is_reversed_protein = self.fdr.is_reversed_protein

        self.abort_requested = False

    def request_abort(self) -> None:
        """Stop processing before the next record."""
        self.abort_requested = True

    def process(
        self, raw_hits: Iterable[RawHit], status: Optional[Callable[[float, str], None]] = None
    ) -> ProcessingResult:
        """
        Process the raw hits of one run.

        Args:
            raw_hits: Raw hits in input order
            status: Optional callable receiving (percent_complete, message);
                it runs on the calling thread

        Returns:
            ProcessingResult with canonical rows, unique sequences, the
            modification summary and the error log
        """
        progress = ProcessingStatus(status)
        result = ProcessingResult(error_log=ErrorLog(self.config["max_error_log_length"]))

        self.abort_requested = False
        self.catalog.reset_occurrence_counts()
        self.deduplicator.clear()
        self._seq_to_protein_seen = set()

        progress.update(0.0, "Validating hits")
        valid_hits = []
        for hit in raw_hits:
            result.input_count += 1
            try:
                validate_raw_hit(hit)
            except MalformedRecordError as e:
                result.error_log.append(f"Line {e.line_number}: {e.user_msg}")
                self.logger.debug(f"Skipping invalid hit: {e.user_msg}")
                continue
            valid_hits.append(hit)
        result.valid_count = len(valid_hits)

        progress.update(10.0, "Ranking and filtering hits")
        groups = self.ranking.group_hits(valid_hits)
        if self.config["first_hits_only"]:
            filtered = self.ranking.filter_first_hits(groups)
        else:
            filtered = self.ranking.filter_synopsis(groups)
        filtered = self.ranking.sort_for_output(filtered)
        result.filtered_count = len(filtered)

        progress.update(20.0, "Computing FDR and q-values")
        self.fdr.estimate(filtered)

        progress.update(30.0, "Annotating hits")
        output_result_id = 0
        for index, ranked_hit in enumerate(filtered):
            if self.abort_requested:
                self.logger.warning(f"Processing aborted after {index} of {len(filtered)} hits")
                result.aborted = True
                break

            annotated = self.annotator.annotate_peptide(
                ranked_hit.hit.peptide,
                update_occurrence_counts=True,
                result_id=ranked_hit.hit.result_id,
                mass_service=self.mass_service,
            )
            for error in annotated.errors:
                result.error_log.append(error.user_msg)

            for row in self._build_rows(ranked_hit, annotated, output_result_id, result):
                output_result_id += 1
                result.rows.append(row)

            if (index + 1) % STATUS_INTERVAL == 0:
                progress.update(30.0 + 65.0 * (index + 1) / len(filtered), f"Annotated {index + 1} hits")

        result.unique_sequences = self.deduplicator.entries()
        result.mod_summary = self.catalog.summary_records()

        progress.update(100.0, "Processing complete")
        self.logger.info(
            f"Processed {result.input_count} hits: {result.valid_count} valid, "
            f"{result.filtered_count} passed filters, {len(result.rows)} rows written"
        )
        if result.error_log:
            self.logger.warning(f"{result.error_log.error_count} invalid lines and/or annotation errors")
        return result

    def _compute_deltas(self, hit: RawHit, annotated: AnnotatedPeptide):
        """Mass error of the observed precursor, corrected for C13 isotope picks."""
        if hit.precursor_mz <= 0 or hit.charge <= 0:
            return self.mass_service.compute_delta(0.0, annotated.monoisotopic_mass)

        precursor_mass = mz_to_neutral_mass(hit.precursor_mz, hit.charge)
        delta_da, _ = self.mass_service.compute_delta(precursor_mass, annotated.monoisotopic_mass)
        delta_ppm = self.mass_service.compute_delta_ppm_c13(
            delta_da,
            precursor_mass,
            annotated.monoisotopic_mass,
            self.config["adjust_precursor_for_c13"],
        )
        return delta_da, delta_ppm

    @staticmethod
    def _tool_mass(hit: RawHit) -> float:
        """Tool's monoisotopic mass, derived from its (M+H)+ when Mass is absent."""
        if hit.tool_mass > 0:
            return hit.tool_mass
        if hit.mh > 0:
            return convolute_mass(hit.mh, 1, 0)
        return 0.0

    def _build_rows(
        self, ranked_hit: RankedHit, annotated: AnnotatedPeptide, first_result_id: int, result: ProcessingResult
    ) -> List[Dict]:
        hit: RawHit = ranked_hit.hit

        self.mass_service.validate_matching_mass(
            annotated.clean_sequence,
            self._tool_mass(hit),
            annotated.monoisotopic_mass,
            result_id=hit.result_id,
        )

        unique_seq_id, _ = self.deduplicator.get_or_create_id(
            annotated.clean_sequence,
            annotated.mod_description,
            mass=annotated.monoisotopic_mass,
            mod_count=annotated.mod_count,
        )

        delta_da, delta_ppm = self._compute_deltas(hit, annotated)

        proteins = parse_protein_list(hit.protein) or [(UNKNOWN_PROTEIN, "")]
        coordinates = {}
        matches = []
        if self.mapper is not None:
            matches = self.mapper.find_matches(annotated.clean_sequence)
            coordinates = {c.protein: c for c in matches}

        rows = []
        for offset, (protein, position) in enumerate(proteins):
            result_id = first_result_id + offset + 1
            if not position and protein in coordinates:
                coordinate = coordinates[protein]
                position = f"{coordinate.residue_start}~{coordinate.residue_end}"

            result.result_to_seq_map.append({"ResultID": result_id, "Unique_Seq_ID": unique_seq_id})
            if (unique_seq_id, protein) not in self._seq_to_protein_seen:
                self._seq_to_protein_seen.add((unique_seq_id, protein))
                result.seq_to_protein_map.append(
                    {"Unique_Seq_ID": unique_seq_id, "Protein_Name": protein, "Peptide_Position": position}
                )

            row = {
                "ResultID": result_id,
                "Scan": hit.scan,
                "Charge": hit.charge,
                "PrecursorMZ": hit.precursor_mz,
                "DelM": round(delta_da, 5),
                "DelM_PPM": round(delta_ppm, 4),
                "MH": round(annotated.mh, 6),
                "Peptide": hit.peptide,
                "ModificationAnnotation": annotated.mod_description,
                "Protein": protein,
                "Peptide_Position": position,
                "Score": hit.score,
                "Rank_Score": ranked_hit.rank,
                "FDR": round(ranked_hit.fdr, 5),
                "QValue": round(ranked_hit.q_value, 5),
            }
            rows.append({column: row[column] for column in OUTPUT_COLUMNS})

        if matches:
            # Protein mods are keyed to the first output row of the hit
            result.protein_mod_details.extend(
                self.mapper.protein_mod_details(
                    annotated.clean_sequence,
                    annotated.modifications,
                    matches=matches,
                    result_id=first_result_id + 1,
                    unique_seq_id=unique_seq_id,
                )
            )
        return rows
