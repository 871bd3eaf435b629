"""Unit tests for ScanProgressStore."""

from sonarium.core.models import ScanType
from sonarium.core.progress_store import ScanProgressStore, ScanStep, steps_of


class TestScanSteps:
    def test_full_steps_in_order(self):
        assert steps_of(ScanType.FULL) == [
            ScanStep.FULL_PREPARING,
            ScanStep.FULL_SEARCHING_MEDIA,
            ScanStep.FULL_CLEANING_SONGS,
            ScanStep.FULL_CLEANING_ARTWORKS,
            ScanStep.FULL_IMPORTING,
            ScanStep.FULL_SEARCHING_ARTWORKS,
        ]

    def test_step_numbers(self):
        assert ScanStep.FULL_PREPARING.step_number == 1
        assert ScanStep.FULL_SEARCHING_ARTWORKS.step_number == 6
        assert ScanStep.FULL_IMPORTING.total_steps == 6
        assert ScanStep.EDIT_WRITING.step_number == 2
        assert ScanStep.EDIT_WRITING.total_steps == 3

    def test_steps_with_value(self):
        assert not ScanStep.FULL_PREPARING.has_value
        assert not ScanStep.FULL_SEARCHING_MEDIA.has_value
        assert ScanStep.FULL_CLEANING_SONGS.has_value
        assert ScanStep.FULL_CLEANING_ARTWORKS.has_value
        assert ScanStep.FULL_IMPORTING.has_value
        assert ScanStep.FULL_SEARCHING_ARTWORKS.has_value


class TestScanProgressStore:
    def setup_method(self):
        self.store = ScanProgressStore()

    def test_start_step(self):
        progress = self.store.start_step(1, ScanStep.FULL_PREPARING, files=["/music"])
        assert progress.scan_type == ScanType.FULL
        assert progress.step_number == 1
        assert progress.total_steps == 6
        assert progress.files == ["/music"]
        assert progress.value is None

    def test_next_step_keeps_files_and_resets_value(self):
        self.store.start_step(1, ScanStep.FULL_PREPARING, files=["/music"])
        self.store.start_step(1, ScanStep.FULL_CLEANING_SONGS)
        self.store.update_value(1, 3, 10)
        progress = self.store.start_step(1, ScanStep.FULL_CLEANING_ARTWORKS)
        assert progress.files == ["/music"]
        assert progress.value.items_complete == 0
        assert progress.value.items_total == 0

    def test_update_value(self):
        self.store.start_step(1, ScanStep.FULL_IMPORTING)
        self.store.update_value(1, 5, 8)
        value = self.store.get(1).value
        assert (value.items_complete, value.items_total) == (5, 8)

    def test_update_value_ignored_for_steps_without_value(self):
        self.store.start_step(1, ScanStep.FULL_SEARCHING_MEDIA)
        self.store.update_value(1, 5, 8)
        assert self.store.get(1).value is None

    def test_get_returns_copy(self):
        self.store.start_step(1, ScanStep.FULL_PREPARING, files=["/music"])
        snapshot = self.store.get(1)
        snapshot.files.append("/other")
        assert self.store.get(1).files == ["/music"]

    def test_get_unknown_job(self):
        assert self.store.get(42) is None

    def test_clear(self):
        self.store.start_step(1, ScanStep.FULL_PREPARING)
        self.store.clear(1)
        assert self.store.get(1) is None
        assert self.store.get_all() == {}
