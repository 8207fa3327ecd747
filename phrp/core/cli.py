#!/usr/bin/env python3
"""
Command line interface for the peptide hit results processor
"""

import click
import sys
import logging
import time
from typing import Dict, Optional, Tuple

from .constants import DEFAULT_CONFIG, NOTATION_BRACKETED, NOTATION_INLINE, SCORE_PRESETS, build_config
from .exceptions import ConfigurationError
from .modifications import ModificationCatalog
from .pipeline import HitProcessor
from .protein_map import PeptideProteinCoordinateMapper
from .result_files import (
    output_base,
    read_raw_hits,
    write_mod_summary,
    write_protein_mods,
    write_seq_info,
    write_sequence_maps,
    write_synopsis,
)

logger = logging.getLogger(__name__)


@click.command()
@click.option(
    "-in",
    "--input",
    "input_file",
    required=True,
    type=click.Path(exists=True),
    help="Input raw hit table (tab-delimited)"
)
@click.option(
    "-out",
    "--output",
    "output",
    required=True,
    type=click.Path(),
    help="Output synopsis file (tab-delimited)"
)
@click.option(
    "--mod-file",
    type=click.Path(exists=True),
    default=None,
    help="Tab-delimited modification definitions file"
)
@click.option(
    "--mod",
    "mods",
    multiple=True,
    help="Modification definition: symbol,mass,residues,type,tag[,atom] (repeatable)"
)
@click.option(
    "--pep-to-protein",
    type=click.Path(exists=True),
    default=None,
    help="Peptide to protein coordinate table (Peptide, Protein, ResidueStart, ResidueEnd)"
)
@click.option(
    "--tool",
    type=click.Choice(sorted(SCORE_PRESETS), case_sensitive=False),
    default=None,
    help="Search tool preset for the score column, direction and synopsis threshold"
)
@click.option(
    "--notation",
    type=click.Choice([NOTATION_INLINE, NOTATION_BRACKETED], case_sensitive=False),
    default=DEFAULT_CONFIG["notation"],
    help="Modification notation of the peptides (default: inline)"
)
@click.option(
    "--score-column",
    type=str,
    default=None,
    help="Score column used for ranking (default: Probability)"
)
@click.option(
    "--lower-is-better",
    is_flag=True,
    default=False,
    help="Lower scores are better (p-values, E-values)"
)
@click.option(
    "--synopsis-threshold",
    type=float,
    default=None,
    help="Score a hit must reach to be written (default: 0.05)"
)
@click.option(
    "--first-hits",
    is_flag=True,
    default=False,
    help="Only write the rank 1 hit of each scan"
)
@click.option(
    "--no-charge-grouping",
    is_flag=True,
    default=False,
    help="Rank hits per scan across all charge states"
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode"
)
@click.option(
    "--log-file",
    type=str,
    default=None,
    help="Log file path (only used in debug mode, default: {output_base}_debug.log)"
)
def phrp_process(
    input_file,
    output,
    mod_file,
    mods,
    pep_to_protein,
    tool,
    notation,
    score_column,
    lower_is_better,
    synopsis_threshold,
    first_hits,
    no_charge_grouping,
    debug,
    log_file,
):
    """
    Normalize peptide identifications into a synopsis file.

    Hits are ranked per scan, filtered by score, annotated with their
    modifications, given recomputed masses, FDR and q-values, and written
    in a canonical column layout.
    """
    try:
        log_file_path = setup_logging(debug, log_file, output)
        if log_file_path:
            logger.debug(f"Writing debug log to {log_file_path}")

        runner = PeptideHitResultsProcessor()
        exit_code = runner.run(
            input_file=input_file,
            output=output,
            mod_file=mod_file,
            mods=mods,
            pep_to_protein=pep_to_protein,
            tool=tool,
            notation=notation,
            score_column=score_column,
            lower_is_better=lower_is_better,
            synopsis_threshold=synopsis_threshold,
            first_hits=first_hits,
            no_charge_grouping=no_charge_grouping,
            debug=debug,
        )
        sys.exit(exit_code)

    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {str(e)}", err=True)
        if debug:
            logger.error(f"Error: {str(e)}")
            import traceback

            logger.error(traceback.format_exc())
        sys.exit(1)


def setup_logging(debug: bool, log_file: Optional[str], output: str) -> Optional[str]:
    """
    Send engine messages to the console and, in debug mode, to a log file.

    The console shows messages without timestamps. The debug log next to
    the synopsis also records the per-record messages logged at DEBUG.

    Returns:
        Path of the debug log, or None when not in debug mode
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(levelname)s - %(name)s - %(message)s"))
    root_logger.addHandler(console_handler)

    # pandas and numpy only log their own internals
    for name in ("numpy", "pandas"):
        logging.getLogger(name).setLevel(logging.WARNING)

    if not debug:
        return None

    log_file_path = log_file or f"{output_base(output)}_debug.log"
    file_handler = logging.FileHandler(log_file_path, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root_logger.addHandler(file_handler)
    return log_file_path


def parse_mod_option(mod: str) -> str:
    """Turn a comma-separated --mod value into a definitions file line."""
    return "\t".join(field.strip() for field in mod.split(","))


class PeptideHitResultsProcessor:
    """Main class for the phrp-process command line tool"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.catalog = ModificationCatalog()
        self.config = {}

    def build_catalog(self, mod_file: Optional[str], mods: Tuple[str, ...]) -> ModificationCatalog:
        """
        Load modification definitions from a file and from --mod values.

        Raises:
            ConfigurationError: If a definition cannot be parsed
        """
        catalog = ModificationCatalog(mass_digits_of_precision=self.config["mass_digits_of_precision"])
        if mod_file:
            catalog.load_definitions_file(mod_file)

        for mod in mods:
            definition = catalog.parse_definition_line(parse_mod_option(mod))
            if definition is None:
                raise ConfigurationError(
                    "Invalid modification definition",
                    detail_msg=f"Expected symbol,mass,residues,type,tag: {mod}",
                )
            self.logger.debug(f"Added modification {definition.symbol} {definition.mass} {definition.target_residues}")

        self.logger.info(f"Modification catalog has {len(catalog)} definitions")
        return catalog

    def build_run_config(
        self,
        tool: Optional[str],
        notation: str,
        score_column: Optional[str],
        lower_is_better: bool,
        synopsis_threshold: Optional[float],
        first_hits: bool,
        no_charge_grouping: bool,
    ) -> Dict:
        overrides = {}
        if tool:
            preset_column, higher_is_better, preset_threshold = SCORE_PRESETS[tool.lower()]
            overrides.update(
                {
                    "score_column": preset_column,
                    "higher_is_better": higher_is_better,
                    "synopsis_threshold": preset_threshold,
                }
            )
        if score_column:
            overrides["score_column"] = score_column
        if lower_is_better:
            overrides["higher_is_better"] = False
        if synopsis_threshold is not None:
            overrides["synopsis_threshold"] = synopsis_threshold
        overrides.update(
            {
                "notation": notation.lower(),
                "first_hits_only": first_hits,
                "group_by_charge": not no_charge_grouping,
            }
        )
        return build_config(**overrides)

    def run(
        self,
        input_file: str,
        output: str,
        mod_file: Optional[str],
        mods: Tuple[str, ...],
        pep_to_protein: Optional[str],
        tool: Optional[str],
        notation: str,
        score_column: Optional[str],
        lower_is_better: bool,
        synopsis_threshold: Optional[float],
        first_hits: bool,
        no_charge_grouping: bool,
        debug: bool,
    ) -> int:
        """
        Processing workflow:
        1. Build the configuration and the modification catalog.
        2. Read the raw hits and the optional coordinate table.
        3. Rank, filter, annotate and score the hits.
        4. Write the synopsis, modification summary, sequence info and sequence maps.
        """
        start_time = time.time()

        self.config = self.build_run_config(
            tool, notation, score_column, lower_is_better, synopsis_threshold, first_hits, no_charge_grouping
        )
        self.logger.debug(f"Configuration: {self.config}")

        self.catalog = self.build_catalog(mod_file, mods)

        raw_hits = read_raw_hits(input_file, self.config["score_column"])

        mapper = None
        if pep_to_protein:
            mapper = PeptideProteinCoordinateMapper.from_file(pep_to_protein)

        processor = HitProcessor(self.catalog, self.config, coordinate_table=mapper)
        result = processor.process(raw_hits)

        write_synopsis(result.rows, output)
        mod_summary_path = write_mod_summary(result.mod_summary, output)
        seq_info_path = write_seq_info(result.unique_sequences, output)
        map_paths = write_sequence_maps(result.result_to_seq_map, result.seq_to_protein_map, output)
        protein_mods_path = write_protein_mods(result.protein_mod_details, output)

        self.logger.info(f"Results saved to: {output}")
        self.logger.info(f"Modification summary saved to: {mod_summary_path}")
        self.logger.debug(f"Sequence info saved to: {seq_info_path}")
        self.logger.debug(f"Sequence maps saved to: {', '.join(map_paths)}")
        if protein_mods_path:
            self.logger.debug(f"Protein modification details saved to: {protein_mods_path}")

        if result.error_log:
            self.logger.warning(result.error_log.summary())

        elapsed = time.time() - start_time

        print("\nProcessing Complete:")
        print(f"  Total hits: {result.input_count}")
        print(f"  Valid hits: {result.valid_count}")
        print(f"  Hits passing filters: {result.filtered_count}")
        print(f"  Rows written: {len(result.rows)}")
        print(f"  Unique sequences: {len(result.unique_sequences)}")
        print(f"  Invalid lines and/or annotation errors: {result.error_log.error_count}")
        print(f"  Time elapsed: {elapsed:.2f} seconds")

        if debug:
            self.logger.info(
                {
                    "total": result.input_count,
                    "valid": result.valid_count,
                    "filtered": result.filtered_count,
                    "rows": len(result.rows),
                    "errors": result.error_log.error_count,
                    "elapsed_sec": round(elapsed, 2),
                }
            )

        return 0


def main():
    """Entry point for the phrp-process CLI."""
    phrp_process()


if __name__ == "__main__":
    main()
