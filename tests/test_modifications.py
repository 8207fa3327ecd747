"""
Test the modification catalog: definitions, mass lookup and definition files
"""

import pytest


class TestModificationDefinitions:
    """Adding definitions to the catalog."""

    def test_static_mod_indexed_by_residue(self):
        """Static mods are found through the residue index"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        definition = catalog.add_definition(57.021464, "C", ModificationType.STATIC)

        assert definition.mod_type == ModificationType.STATIC
        assert definition.mass_correction_tag == "IodoAcet"
        assert catalog.static_mods_for("C") == [definition]
        assert catalog.static_mods_for("M") == []

    def test_static_mod_on_terminus_becomes_terminal(self):
        """A static mod on a single terminus symbol changes type"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        peptide_n = catalog.add_definition(229.162932, "<", ModificationType.STATIC)
        protein_n = catalog.add_definition(42.010565, "[", ModificationType.STATIC)

        assert peptide_n.mod_type == ModificationType.TERMINAL_PEPTIDE_STATIC
        assert peptide_n.mass_correction_tag == "TMT6Tag"
        assert protein_n.mod_type == ModificationType.PROTEIN_TERMINUS_STATIC
        assert protein_n.mass_correction_tag == "Acetyl"

    def test_equivalent_definitions_are_merged(self):
        """Adding the same chemistry twice extends the target residues"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        first = catalog.add_definition(79.966331, "S", ModificationType.DYNAMIC, symbol="*")
        merged = catalog.add_definition(79.966331, "TY", ModificationType.DYNAMIC, symbol="*")

        assert len(catalog) == 1
        assert merged.mod_id == first.mod_id
        assert merged.target_residues == "STY"
        # The original definition is immutable
        assert first.target_residues == "S"

    def test_isotopic_mod_requires_affected_atom(self):
        """Isotopic mods without an element are rejected"""
        from phrp.core.exceptions import ConfigurationError
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        with pytest.raises(ConfigurationError):
            catalog.add_definition(0.997035, "", ModificationType.ISOTOPIC)

        definition = catalog.add_definition(0.997035, "", ModificationType.ISOTOPIC, affected_atom="N")
        assert definition.mass_correction_tag == "Iso_N15"
        assert definition.symbol == "-"

    def test_definitions_are_frozen(self):
        """Definitions cannot be changed in place"""
        import dataclasses

        from phrp.core.modifications import ModificationCatalog

        catalog = ModificationCatalog()
        definition = catalog.add_definition(15.994915, "M")

        with pytest.raises(dataclasses.FrozenInstanceError):
            definition.mass = 16.0


class TestLookupByMass:
    """Resolution order of lookup_by_mass."""

    def test_existing_definition_for_residue(self):
        """A configured mod on the residue is returned as existing"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        oxidation = catalog.add_definition(15.994915, "M", ModificationType.DYNAMIC, symbol="*")

        definition, found_existing = catalog.lookup_by_mass(15.9949, ModificationType.DYNAMIC, "M")

        assert found_existing is True
        assert definition == oxidation

    def test_definition_without_targets(self):
        """A definition with no target residues matches any residue"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        anywhere = catalog.add_definition(14.01565, "", ModificationType.DYNAMIC, symbol="#")

        definition, found_existing = catalog.lookup_by_mass(14.016, ModificationType.DYNAMIC, "K")

        assert found_existing is True
        assert definition.mod_id == anywhere.mod_id
        assert definition.target_residues == ""

    def test_refinement_loss_on_glutamine(self):
        """NH3 loss on Q is recognized without configuration"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        definition, found_existing = catalog.lookup_by_mass(-17.0265, ModificationType.DYNAMIC, "Q")

        assert found_existing is True
        assert definition.auto_defined is False
        assert definition.target_residues == "Q"
        assert definition.mass == pytest.approx(-17.026549)
        assert definition.mass_correction_tag == "NH3_Loss"

    def test_same_mass_on_new_residue_extends_targets(self):
        """A known mass seen on another residue adds that residue"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        oxidation = catalog.add_definition(15.994915, "M", ModificationType.DYNAMIC, symbol="*")

        definition, found_existing = catalog.lookup_by_mass(15.9949, ModificationType.DYNAMIC, "W")

        assert found_existing is True
        assert definition.mod_id == oxidation.mod_id
        assert definition.target_residues == "MW"
        assert catalog.get(oxidation.mod_id).target_residues == "MW"
        assert len(catalog) == 1

    def test_unknown_mass_is_auto_defined(self):
        """Lookup never fails; unknown masses create a flagged definition"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        definition, found_existing = catalog.lookup_by_mass(15.9949, ModificationType.DYNAMIC, "P")

        assert found_existing is False
        assert definition.auto_defined is True
        assert definition.target_residues == "P"
        assert definition.mass_correction_tag == "Plus1Oxy"
        assert definition.symbol == "*"

        again, found_existing = catalog.lookup_by_mass(15.9949, ModificationType.DYNAMIC, "P")
        assert found_existing is True
        assert again.mod_id == definition.mod_id

    def test_auto_defined_terminal_mod_targets_terminus(self):
        """An unknown mass on the N-terminal residue targets the terminus symbol"""
        from phrp.core.modifications import ModificationCatalog, ModificationType, TerminusState

        catalog = ModificationCatalog()
        definition, _ = catalog.lookup_by_mass(
            42.011, ModificationType.DYNAMIC, "P", TerminusState.PEPTIDE_N_TERMINUS
        )

        assert definition.target_residues == "<"
        assert definition.mass_correction_tag == "Acetyl"

    def test_symbols_are_handed_out_in_order(self):
        """Each new auto-defined dynamic mod takes the next symbol"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        first, _ = catalog.lookup_by_mass(15.9949, ModificationType.DYNAMIC, "M")
        second, _ = catalog.lookup_by_mass(79.9663, ModificationType.DYNAMIC, "S")

        assert first.symbol == "*"
        assert second.symbol == "#"

    def test_generic_name_for_unknown_mass(self):
        """Masses without a known tag get an 8 character generic name"""
        from phrp.core.modifications import ModificationCatalog, generate_generic_mod_mass_name

        assert generate_generic_mod_mass_name(15.9949) == "+15.9949"
        assert generate_generic_mod_mass_name(-17.027) == "-17.0270"
        assert generate_generic_mod_mass_name(123.4567) == "+123.457"

        catalog = ModificationCatalog()
        assert catalog.lookup_mass_correction_tag(123.4567) == "+123.457"

    def test_integer_mass_tags(self):
        """Zero digits of precision consults the integer mass table"""
        from phrp.core.modifications import ModificationCatalog

        catalog = ModificationCatalog()
        assert catalog.lookup_mass_correction_tag(16, digits=0, digits_loose=0) == "Plus1Oxy"
        assert catalog.lookup_mass_correction_tag(80, digits=0, digits_loose=0) == "Phosph"


class TestModificationSummary:
    """Occurrence counts and the summary records."""

    def test_unused_auto_defined_mods_are_hidden(self):
        """Auto-defined mods appear in the summary only once used"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        catalog = ModificationCatalog()
        catalog.add_definition(57.021464, "C", ModificationType.STATIC)
        unknown, _ = catalog.lookup_by_mass(15.9949, ModificationType.DYNAMIC, "P")

        records = catalog.summary_records()
        assert [r["Mass_Correction_Tag"] for r in records] == ["IodoAcet"]
        assert records[0]["Occurrence_Count"] == 0
        assert records[0]["Modification_Type"] == "S"

        catalog.increment_occurrence(unknown)
        records = catalog.summary_records()
        assert len(records) == 2
        assert records[1]["Modification_Mass"] == "15.994900"
        assert records[1]["Modification_Type"] == "D"
        assert records[1]["Occurrence_Count"] == 1

    def test_reset_occurrence_counts(self):
        """Counts go back to zero between runs"""
        from phrp.core.modifications import ModificationCatalog

        catalog = ModificationCatalog()
        definition = catalog.add_definition(15.994915, "M", symbol="*")
        catalog.increment_occurrence(definition, 3)
        assert catalog.occurrence_count(definition) == 3

        catalog.reset_occurrence_counts()
        assert catalog.occurrence_count(definition) == 0


class TestDefinitionFiles:
    """Loading tab-delimited definition files."""

    def test_load_definitions_file(self, tmp_path):
        """Comments are skipped and each line adds one definition"""
        from phrp.core.modifications import ModificationCatalog, ModificationType

        mod_file = tmp_path / "mods.txt"
        mod_file.write_text(
            "# symbol\tmass\tresidues\ttype\ttag\n"
            "-\t57.021464\tC\tS\tIodoAcet\n"
            "*\t15.994915\tM\tD\tPlus1Oxy\n"
            "\n"
            "-\t229.162932\t<\tS\tTMT6Tag\n"
        )

        catalog = ModificationCatalog()
        count = catalog.load_definitions_file(str(mod_file))

        assert count == 3
        types = [d.mod_type for d in catalog.definitions]
        assert types == [
            ModificationType.STATIC,
            ModificationType.DYNAMIC,
            ModificationType.TERMINAL_PEPTIDE_STATIC,
        ]
        assert catalog.definitions[1].symbol == "*"

    def test_missing_file(self, tmp_path):
        """A missing definitions file is a configuration error"""
        from phrp.core.exceptions import ConfigurationError
        from phrp.core.modifications import ModificationCatalog

        catalog = ModificationCatalog()
        with pytest.raises(ConfigurationError):
            catalog.load_definitions_file(str(tmp_path / "missing.txt"))

    def test_invalid_definition_reports_line(self, tmp_path):
        """An inconsistent definition stops loading with the line number"""
        from phrp.core.exceptions import ConfigurationError
        from phrp.core.modifications import ModificationCatalog

        mod_file = tmp_path / "mods.txt"
        mod_file.write_text("*\t15.994915\tM\tD\tPlus1Oxy\n-\t0.997035\t\tI\tIso_N15\n")

        catalog = ModificationCatalog()
        with pytest.raises(ConfigurationError) as excinfo:
            catalog.load_definitions_file(str(mod_file))

        assert "Line 2" in excinfo.value.detail_msg
        assert excinfo.value.error_code == "CONFIGURATION_ERROR"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
