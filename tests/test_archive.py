"""Tests for the archive index."""

from hilo.archive import ArchiveIndex
from hilo.metadata import Metadata
from hilo.types import Entry, MiniName, VolumeRecord


class TestArchiveIndex:

    def test_nothing_archived(self, metadata_store, notebook):
        notebook.upsert([Entry(name=MiniName(i), content=f"s{i}") for i in range(3)])
        index = ArchiveIndex(metadata_store, notebook)
        assert index.archived_turn_ids() == set()
        assert [e.turn_id for e in index.unarchived_summaries()] == [0, 1, 2]

    def test_union_of_ranges(self, metadata_store, notebook):
        metadata = Metadata()
        metadata.append_volume(VolumeRecord(1, 0, 2))
        metadata.append_volume(VolumeRecord(2, 5, 6))
        metadata_store.save(metadata)
        notebook.upsert([Entry(name=MiniName(i), content=f"s{i}") for i in range(8)])

        index = ArchiveIndex(metadata_store, notebook)
        assert index.archived_turn_ids() == {0, 1, 2, 5, 6}
        assert index.is_archived(6)
        assert not index.is_archived(3)
        assert [e.turn_id for e in index.unarchived_summaries()] == [3, 4, 7]

    def test_reflects_metadata_changes_immediately(self, metadata_store, notebook):
        notebook.upsert([Entry(name=MiniName(0), content="s")])
        index = ArchiveIndex(metadata_store, notebook)
        assert len(index.unarchived_summaries()) == 1

        metadata = metadata_store.load()
        metadata.append_volume(VolumeRecord(1, 0, 0))
        metadata_store.save(metadata)
        assert index.unarchived_summaries() == []
