"""Tests for turn visibility and summary enablement."""

from hilo.archive import ArchiveIndex
from hilo.config import Settings
from hilo.metadata import Metadata
from hilo.notebook import Notebook
from hilo.types import GENERATING_MARKER, Entry, MiniName, VolumeRecord
from hilo.visibility import VisibilitySynchronizer


def _sync(settings, transcript, notebook, metadata_store) -> VisibilitySynchronizer:
    return VisibilitySynchronizer(
        settings, transcript, notebook, ArchiveIndex(metadata_store, notebook),
    )


class TestVisibility:

    def test_empty_transcript(self, settings, transcript, notebook, metadata_store):
        result = _sync(settings, transcript, notebook, metadata_store).sync()
        assert (result.turns_changed, result.entries_changed) == (0, 0)

    def test_window_hides_older_turns(self, transcript, notebook, metadata_store):
        for i in range(10):
            transcript.append("assistant", f"turn {i}")
        _sync(Settings(visible_turns=3), transcript, notebook, metadata_store).sync()
        hidden = [t.id for t in transcript.list_turns() if t.hidden]
        assert hidden == list(range(7))

    def test_window_moves_forward(self, transcript, notebook, metadata_store):
        sync = _sync(Settings(visible_turns=2), transcript, notebook, metadata_store)
        for i in range(3):
            transcript.append("assistant", f"turn {i}")
        sync.sync()
        transcript.append("assistant", "turn 3")
        result = sync.sync()
        assert result.turns_changed == 1
        assert [t.hidden for t in transcript.list_turns()] == [True, True, False, False]

    def test_system_turns_are_untouched(self, transcript, notebook, metadata_store):
        transcript.append("system", "setup")
        for i in range(4):
            transcript.append("assistant", f"turn {i}")
        _sync(Settings(visible_turns=1), transcript, notebook, metadata_store).sync()
        assert transcript.get_turn(0).hidden is False
        assert transcript.get_turn(1).hidden is True

    def test_only_changes_are_written(self, transcript, notebook, metadata_store):
        for i in range(5):
            transcript.append("assistant", f"turn {i}")
        notebook.upsert([Entry(name=MiniName(i), content="s") for i in range(5)])
        sync = _sync(Settings(visible_turns=2), transcript, notebook, metadata_store)
        first = sync.sync()
        assert (first.turns_changed, first.entries_changed) == (3, 3)
        second = sync.sync()
        assert (second.turns_changed, second.entries_changed) == (0, 0)

    def test_summary_enabled_only_when_hidden_and_unarchived(self, transcript, notebook, metadata_store):
        for i in range(10):
            transcript.append("assistant", f"turn {i}")
        notebook.upsert([Entry(name=MiniName(i), content="s", enabled=True) for i in range(10)])
        metadata = Metadata()
        metadata.append_volume(VolumeRecord(1, 0, 2))
        metadata_store.save(metadata)

        _sync(Settings(visible_turns=3), transcript, notebook, metadata_store).sync()
        enabled = [e.turn_id for e in notebook.mini_summaries() if e.enabled]
        assert enabled == [3, 4, 5, 6]

    def test_invariant_holds_outside_window(self, transcript, notebook, metadata_store):
        transcript.append("system", "setup")
        for i in range(1, 12):
            transcript.append("user" if i % 2 else "assistant", f"turn {i}")
        notebook.upsert([Entry(name=MiniName(i), content="s") for i in range(1, 12)])
        metadata = Metadata()
        metadata.append_volume(VolumeRecord(1, 1, 4))
        metadata_store.save(metadata)
        settings = Settings(visible_turns=4)

        _sync(settings, transcript, notebook, metadata_store).sync()

        threshold = transcript.latest_turn_id() - settings.visible_turns + 1
        enabled = {e.turn_id: e.enabled for e in notebook.mini_summaries()}
        archived = set(range(1, 5))
        for turn in transcript.list_turns():
            if turn.is_system:
                assert not turn.hidden
                continue
            if turn.id >= threshold:
                assert not turn.hidden
                assert not enabled.get(turn.id, False)
                continue
            covered = enabled.get(turn.id, False) or turn.id in archived
            assert (not turn.hidden) != covered, turn

    def test_unbound_notebook_still_syncs_turns(self, transcript, note_store, metadata_store, caplog):
        for i in range(3):
            transcript.append("assistant", f"turn {i}")
        notebook = Notebook(note_store, "missing[summary]")
        result = _sync(Settings(visible_turns=1), transcript, notebook, metadata_store).sync()
        assert result.turns_changed == 2
        assert "No note collection" in caplog.text

    def test_placeholders_stay_disabled(self, transcript, notebook, metadata_store):
        for i in range(4):
            transcript.append("assistant", f"turn {i}")
        notebook.upsert([
            Entry(name=MiniName(0), content="s"),
            Entry(name=MiniName(1), content=GENERATING_MARKER),
        ])
        _sync(Settings(visible_turns=1), transcript, notebook, metadata_store).sync()
        enabled = {e.turn_id: e.enabled for e in notebook.mini_summaries()}
        assert enabled == {0: True, 1: False}
        assert transcript.get_turn(1).hidden
