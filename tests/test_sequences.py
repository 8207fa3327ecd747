"""
Test the unique sequence registry
"""

import pytest


class TestSequenceDeduplicator:
    """Stable ids for (clean sequence, modification description) pairs."""

    def test_get_or_create_is_idempotent(self):
        """The second call returns the same id and reports it as existing"""
        from phrp.core.sequences import SequenceDeduplicator

        registry = SequenceDeduplicator()
        first_id, existed = registry.get_or_create_id("PEPTIDE", "Plus1Oxy:1", mass=815.35, mod_count=1)
        assert (first_id, existed) == (1, False)

        again_id, existed = registry.get_or_create_id("PEPTIDE", "Plus1Oxy:1")
        assert (again_id, existed) == (1, True)
        assert len(registry) == 1

    def test_localization_changes_identity(self):
        """The same sequence with a differently placed mod gets a new id"""
        from phrp.core.sequences import SequenceDeduplicator

        registry = SequenceDeduplicator()
        id_a, _ = registry.get_or_create_id("PEPTIDE", "Plus1Oxy:1")
        id_b, _ = registry.get_or_create_id("PEPTIDE", "Plus1Oxy:3")
        id_c, _ = registry.get_or_create_id("PEPTIDE", "")

        assert [id_a, id_b, id_c] == [1, 2, 3]
        assert ("PEPTIDE", "Plus1Oxy:3") in registry

    def test_metadata_kept_from_first_sighting(self):
        """Mass and mod count are stored when the entry is created"""
        from phrp.core.sequences import SequenceDeduplicator

        registry = SequenceDeduplicator()
        registry.get_or_create_id("ACDK", "", mass=435.19, mod_count=0)
        registry.get_or_create_id("MK", "Plus1Oxy:1", mass=293.13, mod_count=1)
        registry.get_or_create_id("ACDK", "", mass=999.0, mod_count=5)

        entries = registry.entries()
        assert [e.unique_seq_id for e in entries] == [1, 2]
        assert entries[0].monoisotopic_mass == pytest.approx(435.19)
        assert entries[0].mod_count == 0
        assert entries[1].key == ("MK", "Plus1Oxy:1")

    def test_clear(self):
        """Ids restart after clearing"""
        from phrp.core.sequences import SequenceDeduplicator

        registry = SequenceDeduplicator()
        registry.get_or_create_id("PEPTIDE", "")
        registry.clear()

        assert len(registry) == 0
        assert registry.get_or_create_id("ACDK", "") == (1, False)

    def test_entries_are_frozen(self):
        """Entries are never changed after creation"""
        import dataclasses

        from phrp.core.sequences import SequenceDeduplicator

        registry = SequenceDeduplicator()
        registry.get_or_create_id("PEPTIDE", "")
        entry = registry.entries()[0]

        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.mod_count = 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
