"""
Test the per-file processing pipeline end to end
"""

import pytest


def make_hit(result_id, scan, peptide, protein, score, charge=2, precursor_mz=0.0, line_number=0):
    from phrp.core.pipeline import RawHit

    return RawHit(
        result_id=result_id,
        scan=scan,
        charge=charge,
        precursor_mz=precursor_mz,
        peptide=peptide,
        protein=protein,
        score=score,
        line_number=line_number,
    )


def oxidized_peptide_mz(charge=2):
    """Precursor m/z of PEPTIDE carrying +15.995 on the third residue."""
    from phrp.core.mass import MassComputationService, convolute_mass

    mass = MassComputationService().compute_mass("PEPTIDE", 15.995)
    return convolute_mass(mass, 0, charge)


@pytest.fixture
def raw_hits():
    return [
        make_hit(1, 100, "K.PEP+15.995TIDE.R", "Prot1", 0.9, precursor_mz=oxidized_peptide_mz(), line_number=2),
        make_hit(2, 100, "K.PEPTIDE.R", "REV_Prot9", 0.3, line_number=3),
        make_hit(3, 101, "R.ACDK.-", "Prot2", 0.02, charge=3, line_number=4),
        make_hit(4, 102, "", "Prot3", 0.8, line_number=5),
    ]


class TestValidation:
    """Required fields of raw hits."""

    def test_invalid_fields(self):
        """Missing peptides, bad scans and NaN scores are rejected"""
        from phrp.core.exceptions import MalformedRecordError
        from phrp.core.pipeline import validate_raw_hit

        validate_raw_hit(make_hit(1, 1, "PEPTIDE", "P1", 0.5))

        for hit in [
            make_hit(1, 1, " ", "P1", 0.5),
            make_hit(1, -1, "PEPTIDE", "P1", 0.5),
            make_hit(1, 1, "PEPTIDE", "P1", 0.5, charge=-1),
            make_hit(1, 1, "PEPTIDE", "P1", float("nan"), line_number=9),
        ]:
            with pytest.raises(MalformedRecordError):
                validate_raw_hit(hit)


class TestHitProcessor:
    """Ranking, annotation, masses and FDR in one pass."""

    def test_end_to_end(self, raw_hits):
        """Valid hits above the threshold become canonical rows"""
        from phrp.core.constants import OUTPUT_COLUMNS
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        processor = HitProcessor(ModificationCatalog(), {"synopsis_threshold": 0.05})
        result = processor.process(raw_hits)

        assert result.input_count == 4
        assert result.valid_count == 3
        assert result.filtered_count == 2
        assert result.aborted is False

        assert result.error_log.error_count == 1
        assert result.error_log.lines[0].startswith("Line 5:")

        first, second = result.rows
        assert list(first) == OUTPUT_COLUMNS
        assert [first["ResultID"], second["ResultID"]] == [1, 2]
        assert first["ModificationAnnotation"] == "Plus1Oxy:3"
        assert first["Peptide"] == "K.PEP+15.995TIDE.R"
        assert first["Rank_Score"] == 1
        assert second["Rank_Score"] == 2
        assert first["DelM"] == pytest.approx(0.0, abs=1e-4)
        assert first["DelM_PPM"] == pytest.approx(0.0, abs=0.01)

        # Forward then decoy
        assert [first["FDR"], second["FDR"]] == [0.0, 1.0]
        assert [first["QValue"], second["QValue"]] == [0.0, 1.0]

    def test_sequences_and_mod_summary(self, raw_hits):
        """Unique sequences and used modifications are collected"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        processor = HitProcessor(ModificationCatalog())
        result = processor.process(raw_hits)

        assert [(e.clean_sequence, e.mod_description) for e in result.unique_sequences] == [
            ("PEPTIDE", "Plus1Oxy:3"),
            ("PEPTIDE", ""),
        ]
        assert len(result.mod_summary) == 1
        assert result.mod_summary[0]["Occurrence_Count"] == 1

        # Counts and ids start over on the next run
        again = processor.process(raw_hits)
        assert again.mod_summary[0]["Occurrence_Count"] == 1
        assert len(again.unique_sequences) == 2

    def test_first_hits_only(self, raw_hits):
        """Only the best hit of each scan survives"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        processor = HitProcessor(ModificationCatalog(), {"first_hits_only": True})
        result = processor.process(raw_hits)

        assert [(row["Scan"], row["Score"]) for row in result.rows] == [(100, 0.9), (101, 0.02)]

    def test_one_row_per_protein(self):
        """Multi-protein hits are written once per protein"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        hits = [make_hit(1, 100, "K.PEPTIDE.R", "Prot1;Prot2[K.20~26.R]", 0.9)]
        result = HitProcessor(ModificationCatalog()).process(hits)

        assert [(r["ResultID"], r["Protein"], r["Peptide_Position"]) for r in result.rows] == [
            (1, "Prot1", ""),
            (2, "Prot2", "K.20~26.R"),
        ]

    def test_unknown_protein(self):
        """A hit without proteins gets a placeholder protein"""
        from phrp.core.constants import UNKNOWN_PROTEIN
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        result = HitProcessor(ModificationCatalog()).process([make_hit(1, 5, "PEPTIDE", "", 0.9)])
        assert result.rows[0]["Protein"] == UNKNOWN_PROTEIN

    def test_coordinate_table(self):
        """Protein coordinates fill in missing positions and protein mods"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor
        from phrp.core.protein_map import ProteinCoordinate

        table = [ProteinCoordinate("PEPTIDE", "Prot1", 5, 11)]
        hits = [make_hit(1, 100, "K.PEP+15.995TIDE.R", "Prot1", 0.9)]
        result = HitProcessor(ModificationCatalog(), coordinate_table=table).process(hits)

        assert result.rows[0]["Peptide_Position"] == "5~11"
        assert len(result.protein_mod_details) == 1
        assert result.protein_mod_details[0]["Protein_Residue_Num"] == 7

    def test_bracketed_notation(self):
        """Bracketed masses fall back to two digits when matching known tags"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        processor = HitProcessor(ModificationCatalog(), {"notation": "bracketed"})
        result = processor.process([make_hit(1, 100, "K.(ST)[79.97]PEPTIDE.R", "Prot1", 0.9)])

        assert processor.annotator.mass_digits_of_precision_loose == 2
        assert result.rows[0]["ModificationAnnotation"] == "Phosph:1"

    def test_sequence_maps(self, raw_hits):
        """Every output ResultID maps to the unique sequence it carries"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        result = HitProcessor(ModificationCatalog()).process(raw_hits)

        assert result.result_to_seq_map == [
            {"ResultID": 1, "Unique_Seq_ID": 1},
            {"ResultID": 2, "Unique_Seq_ID": 2},
        ]
        assert [(m["Unique_Seq_ID"], m["Protein_Name"]) for m in result.seq_to_protein_map] == [
            (1, "Prot1"),
            (2, "REV_Prot9"),
        ]

    def test_repeated_peptide_shares_sequence_id(self):
        """Hits on the same peptide reuse its id and list each protein once"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        hits = [
            make_hit(1, 100, "K.PEPTIDE.R", "Prot1;Prot2", 0.9),
            make_hit(2, 101, "K.PEPTIDE.R", "Prot1;Prot2", 0.8),
        ]
        result = HitProcessor(ModificationCatalog()).process(hits)

        assert [m["ResultID"] for m in result.result_to_seq_map] == [1, 2, 3, 4]
        assert {m["Unique_Seq_ID"] for m in result.result_to_seq_map} == {1}
        assert [(m["Unique_Seq_ID"], m["Protein_Name"]) for m in result.seq_to_protein_map] == [
            (1, "Prot1"),
            (1, "Prot2"),
        ]

    def test_protein_mods_per_hit(self):
        """Two hits on one modified peptide give distinguishable protein mod rows"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor
        from phrp.core.protein_map import ProteinCoordinate

        table = [ProteinCoordinate("PEPTIDE", "Prot1", 101, 107)]
        hits = [
            make_hit(1, 100, "K.PEP+15.995TIDE.R", "Prot1", 0.9),
            make_hit(2, 101, "K.PEP+15.995TIDE.R", "Prot1", 0.8),
        ]
        result = HitProcessor(ModificationCatalog(), coordinate_table=table).process(hits)

        details = result.protein_mod_details
        assert [(d["ResultID"], d["Unique_Seq_ID"]) for d in details] == [(1, 1), (2, 1)]
        assert [d["Protein_Residue_Num"] for d in details] == [103, 103]

    def test_mh_used_when_mass_is_absent(self):
        """The tool's (M+H)+ is checked when it reports no monoisotopic mass"""
        from phrp.core.mass import MassComputationService
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        mh = MassComputationService.compute_mh(MassComputationService().compute_mass("PEPTIDE"))

        matching = make_hit(1, 100, "K.PEPTIDE.R", "Prot1", 0.9)
        matching.mh = mh
        processor = HitProcessor(ModificationCatalog())
        processor.process([matching])
        assert processor.mass_service.mismatch_count == 0

        shifted = make_hit(1, 100, "K.PEPTIDE.R", "Prot1", 0.9)
        shifted.mh = mh + 1.0
        processor = HitProcessor(ModificationCatalog())
        processor.process([shifted])
        assert processor.mass_service.mismatch_count == 1

    def test_annotation_errors_are_logged(self):
        """A bad inline mass is recorded but the hit is still written"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        result = HitProcessor(ModificationCatalog()).process([make_hit(12, 7, "PEPTIDE+", "Prot1", 0.9)])

        assert len(result.rows) == 1
        assert result.error_log.error_count == 1
        assert "ResultID = 12" in result.error_log.lines[0]


class TestStatusChannel:
    """Progress callback and abort flag."""

    def test_progress_reaches_100(self, raw_hits):
        """The callback runs on the calling thread and ends at 100%"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        updates = []
        HitProcessor(ModificationCatalog()).process(raw_hits, status=lambda p, m: updates.append((p, m)))

        percents = [p for p, _ in updates]
        assert percents == sorted(percents)
        assert updates[-1] == (100.0, "Processing complete")

    def test_abort_between_records(self, raw_hits):
        """An abort requested from the callback stops before the next record"""
        from phrp.core.modifications import ModificationCatalog
        from phrp.core.pipeline import HitProcessor

        processor = HitProcessor(ModificationCatalog())

        def on_status(percent, message):
            if message == "Annotating hits":
                processor.request_abort()

        result = processor.process(raw_hits, status=on_status)

        assert result.aborted is True
        assert result.rows == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
