"""Tests for summarization metadata."""

import pytest

from hilo.metadata import Metadata, MetadataStore, metadata_from_dict, metadata_to_dict
from hilo.types import VolumeRecord


class TestMetadata:

    def test_defaults(self, metadata_store):
        metadata = metadata_store.load()
        assert metadata.current_volume_number == 1
        assert metadata.last_processed_turn_id == -1
        assert metadata.volumes == []
        assert metadata.scheduled_summaries == 0

    def test_append_volume_advances_counter(self):
        metadata = Metadata()
        metadata.append_volume(VolumeRecord(1, 0, 9, content="long text"))
        assert metadata.current_volume_number == 2
        assert metadata.volumes == [VolumeRecord(1, 0, 9)]

    def test_save_and_load(self, metadata_store):
        metadata = Metadata(last_processed_turn_id=12, scheduled_summaries=7)
        metadata.append_volume(VolumeRecord(1, 0, 5))
        metadata_store.save(metadata)

        loaded = metadata_store.load()
        assert loaded.last_processed_turn_id == 12
        assert loaded.scheduled_summaries == 7
        assert loaded.current_volume_number == 2
        assert loaded.volumes == [VolumeRecord(1, 0, 5)]

    def test_conversations_are_isolated(self, db_path):
        a = MetadataStore(db_path, "a")
        b = MetadataStore(db_path, "b")
        a.save(Metadata(last_processed_turn_id=3))
        assert b.load().last_processed_turn_id == -1
        a.close()
        b.close()

    def test_from_dict_coerces_and_drops_malformed(self, caplog):
        metadata = metadata_from_dict({
            "current_volume_number": "3",
            "last_processed_turn_id": "oops",
            "volumes": [
                {"volume": "1", "start_turn_id": "0", "end_turn_id": 4},
                {"volume": 2, "start_turn_id": 5},
                {"volume": "x", "start_turn_id": 1, "end_turn_id": 2},
            ],
        })
        assert metadata.current_volume_number == 3
        assert metadata.last_processed_turn_id == -1
        assert metadata.volumes == [VolumeRecord(1, 0, 4)]
        assert "malformed" in caplog.text

    def test_dict_round_trip(self):
        metadata = Metadata(current_volume_number=4, last_processed_turn_id=30,
                            volumes=[VolumeRecord(1, 0, 10), VolumeRecord(2, 11, 20)])
        assert metadata_from_dict(metadata_to_dict(metadata)) == metadata

    def test_newer_version_rejected(self, metadata_store):
        metadata_store.save(Metadata(version=99))
        with pytest.raises(ValueError, match="newer"):
            metadata_store.load()
