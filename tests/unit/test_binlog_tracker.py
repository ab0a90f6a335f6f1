"""Unit tests for checkpoint tracking and overflow correction."""

import pytest
from unittest.mock import Mock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../'))

from src.connectors.binlog.dispatcher import EventDispatcher
from src.connectors.binlog.events import BinlogEvent, EventKind
from src.connectors.binlog.overflow import OverflowCorrector, OverflowState
from src.connectors.binlog.position_store import Checkpoint, LogPosition, PositionStore
from src.connectors.binlog.tracker import CheckpointTracker, should_deliver

WRAP = 2 ** 32


def make_store(position=None):
    store = Mock(spec=PositionStore)
    store.read.return_value = position
    return store


class TestShouldDeliver:
    """Test should_deliver."""

    @pytest.mark.parametrize("resume, delivered, expected", [
        (("mysql-bin.000004", 1), ("mysql-bin.000003", 1), True),
        (("mysql-bin.000004", 30), ("mysql-bin.000004", 1), True),
        (("mysql-bin.000004", 30), ("mysql-bin.000004", 30), False),
        (("mysql-bin.000004", 30), ("mysql-bin.000004", 50), False),
        (("mysql-bin.000004", 30), ("mysql-bin.000005", 1), False),
    ])
    def test_strict_ordering(self, resume, delivered, expected):
        """Test delivery only strictly after the delivered position."""
        assert should_deliver(LogPosition(*resume), LogPosition(*delivered)) is expected

    def test_unset_delivered_is_processable(self):
        """Test missing delivered checkpoint always delivers."""
        assert should_deliver(LogPosition("bin1", 4), LogPosition())

    def test_unset_resume_is_processable(self):
        """Test missing resume checkpoint always delivers."""
        assert should_deliver(LogPosition(), LogPosition("bin1", 4))

    @pytest.mark.parametrize("a, b", [(4, 4), (100, 99), (99, 100), (0, 0)])
    def test_same_segment_matches_order(self, a, b):
        """Test same-segment result equals strict greater-than."""
        assert should_deliver(LogPosition("bin", a), LogPosition("bin", b)) is (a > b)


class TestOverflowCorrector:
    """Test OverflowCorrector."""

    def test_no_overflow_returns_reported_position(self, events):
        """Test reported position used verbatim when not wrapped."""
        corrector = OverflowCorrector()
        assert corrector.calc_next_position(100, events.query(200, byte_length=100)) == 200
        assert not corrector.overflowed

    def test_wraparound_uses_byte_length(self, events):
        """Test corrected position after a 32-bit wrap."""
        corrector = OverflowCorrector()
        event = events.query(50, byte_length=150)

        assert corrector.calc_next_position(WRAP - 100, event) == WRAP + 50
        assert corrector.overflowed

    def test_flag_is_sticky(self, events):
        """Test subsequent events keep using byte_length."""
        corrector = OverflowCorrector(OverflowState(overflowed=True))
        event = events.row(900, byte_length=100)

        assert corrector.next_position_overflowed(WRAP + 800, event)
        assert corrector.calc_next_position(WRAP + 800, event) == WRAP + 900

    def test_format_event_returns_zero_when_overflowed(self, events):
        """Test format-description events keep their zero position."""
        corrector = OverflowCorrector(OverflowState(overflowed=True))
        assert corrector.calc_next_position(WRAP + 10, events.format()) == 0

    def test_zero_next_position_is_not_overflow(self, events):
        """Test a zero next position does not trigger detection."""
        corrector = OverflowCorrector()
        assert not corrector.next_position_overflowed(500, events.format())
        assert not corrector.overflowed

    def test_reset_clears_flag(self, events):
        """Test reset clears overflow state."""
        corrector = OverflowCorrector()
        corrector.calc_next_position(WRAP - 100, events.query(50, byte_length=150))
        corrector.reset()
        assert not corrector.overflowed


class TestCheckpointTracker:
    """Test CheckpointTracker per-event protocol."""

    @pytest.fixture
    def resume_store(self):
        return make_store()

    @pytest.fixture
    def delivered_store(self):
        return make_store()

    @pytest.fixture
    def tracker(self, resume_store, delivered_store):
        return CheckpointTracker(
            Checkpoint("resume", resume_store),
            Checkpoint("delivered", delivered_store)
        )

    @pytest.fixture
    def dispatcher(self):
        return EventDispatcher()

    def test_rotate_same_segment_only_saved_once(self, tracker, dispatcher, resume_store, events):
        """Test duplicate rotate for the same segment does not move the checkpoint."""
        tracker.process_event(events.rotate("bin1", 100), dispatcher)
        tracker.process_event(events.rotate("bin1", 4), dispatcher)

        resume_store.update.assert_called_once_with("bin1", 100)
        assert tracker.resume.position == LogPosition("bin1", 100)

    def test_rotate_to_new_segment_saved(self, tracker, dispatcher, resume_store, events):
        """Test rotate to another segment jumps the resume checkpoint."""
        tracker.process_event(events.rotate("bin1", 100), dispatcher)
        tracker.process_event(events.rotate("bin2", 4), dispatcher)

        assert resume_store.update.call_args_list[-1].args == ("bin2", 4)

    def test_consecutive_table_maps_advance_once(self, tracker, dispatcher, resume_store, events):
        """Test only the first table map of a run checkpoints."""
        tracker.process_event(events.rotate("bin1", 100), dispatcher)
        resume_store.update.reset_mock()

        tracker.process_event(events.table_map(150), dispatcher)
        tracker.process_event(events.table_map(200), dispatcher)
        tracker.process_event(events.table_map(250), dispatcher)

        resume_store.update.assert_called_once_with("bin1", 100)

    def test_table_map_after_rows_checkpoints_again(self, tracker, dispatcher, resume_store, events):
        """Test a new statement's table map checkpoints again."""
        tracker.process_event(events.rotate("bin1", 100), dispatcher)
        for event in [events.table_map(150), events.row(200), events.table_map(250)]:
            tracker.process_event(event, dispatcher)

        saved = [c.args for c in resume_store.update.call_args_list]
        assert saved == [("bin1", 100), ("bin1", 100), ("bin1", 200)]

    def test_query_marks_delivered_then_saves_next(self, tracker, dispatcher, resume_store, delivered_store, events):
        """Test query saves delivered=pre-event and resume=next position."""
        tracker.process_event(events.rotate("bin1", 100), dispatcher)
        tracker.process_event(events.query(200), dispatcher)

        delivered_store.update.assert_called_once_with("bin1", 100)
        assert resume_store.update.call_args_list[-1].args == ("bin1", 200)

    def test_row_marks_delivered_without_resume_write(self, tracker, dispatcher, resume_store, delivered_store, events):
        """Test row events only write the delivered checkpoint."""
        tracker.process_event(events.rotate("bin1", 100), dispatcher)
        resume_store.update.reset_mock()

        tracker.process_event(events.row(300), dispatcher)

        delivered_store.update.assert_called_once_with("bin1", 100)
        resume_store.update.assert_not_called()
        assert tracker.resume.offset == 300

    def test_format_event_does_not_move_backwards(self, tracker, dispatcher, events):
        """Test zero next position leaves the offset alone."""
        tracker.process_event(events.rotate("bin1", 120), dispatcher)
        tracker.process_event(events.format(), dispatcher)

        assert tracker.resume.offset == 120

    def test_unknown_event_not_delivered_or_advanced(self, tracker, dispatcher, resume_store, delivered_store, events):
        """Test unknown events leave checkpoints untouched."""
        tracker.process_event(events.rotate("bin1", 100), dispatcher)
        resume_store.update.reset_mock()

        tracker.process_event(events.unknown(500), dispatcher)

        assert tracker.resume.offset == 100
        resume_store.update.assert_not_called()
        delivered_store.update.assert_not_called()

    def test_overflow_scenario(self, tracker, dispatcher, events):
        """Test wrap detection, stickiness and reset on rotation."""
        tracker.process_event(events.rotate("bin1", WRAP - 100), dispatcher)

        tracker.process_event(events.xid(50, byte_length=150), dispatcher)
        assert tracker.resume.offset == WRAP + 50
        assert tracker.overflow.overflowed

        tracker.process_event(events.xid(100, byte_length=50), dispatcher)
        assert tracker.resume.offset == WRAP + 100
        assert tracker.overflow.overflowed

        tracker.process_event(events.rotate("bin1", 4), dispatcher)
        assert tracker.overflow.overflowed

        tracker.process_event(events.rotate("bin2", 4), dispatcher)
        assert not tracker.overflow.overflowed
        assert tracker.resume.position == LogPosition("bin2", 4)

    def test_table_map_not_saved_while_overflowed(self, tracker, dispatcher, resume_store, events):
        """Test overflowed positions are never written at table maps."""
        tracker.process_event(events.rotate("bin1", WRAP - 100), dispatcher)
        tracker.process_event(events.xid(50, byte_length=150), dispatcher)
        resume_store.update.reset_mock()

        tracker.process_event(events.table_map(200, byte_length=150), dispatcher)

        resume_store.update.assert_not_called()
        assert tracker.resume.offset == WRAP + 200

    def test_query_saves_corrected_position_when_overflowed(self, tracker, dispatcher, resume_store, events):
        """Test query resume write uses the corrected position."""
        tracker.process_event(events.rotate("bin1", WRAP - 100), dispatcher)
        tracker.process_event(events.query(50, byte_length=150), dispatcher)

        assert resume_store.update.call_args_list[-1].args == ("bin1", WRAP + 50)

    def test_already_delivered_events_skip_callbacks(self, resume_store, events):
        """Test events at or before the delivered position are replayed silently."""
        resume_store.read.return_value = LogPosition("bin1", 200)
        tracker = CheckpointTracker(
            Checkpoint("resume", resume_store),
            Checkpoint("delivered", make_store(LogPosition("bin1", 250)))
        )
        dispatcher = EventDispatcher()
        row_callback = Mock()
        xid_callback = Mock()
        dispatcher.register(EventKind.ROW, row_callback)
        dispatcher.register(EventKind.XID, xid_callback)

        tracker.process_event(events.table_map(250), dispatcher)
        tracker.process_event(events.row(300), dispatcher)
        tracker.process_event(events.xid(400), dispatcher)

        row_callback.assert_not_called()
        xid_callback.assert_called_once()

    def test_skipped_query_still_saves_resume(self, resume_store, events):
        """Test an undeliverable query keeps the resume checkpoint moving."""
        resume_store.read.return_value = LogPosition("bin1", 100)
        tracker = CheckpointTracker(
            Checkpoint("resume", resume_store),
            Checkpoint("delivered", make_store(LogPosition("bin1", 500)))
        )
        dispatcher = EventDispatcher()
        query_callback = Mock()
        dispatcher.register(EventKind.QUERY, query_callback)

        tracker.process_event(events.query(200), dispatcher)

        query_callback.assert_not_called()
        resume_store.update.assert_called_once_with("bin1", 200)

    def test_rotate_delivered_even_when_not_processable(self, resume_store, events):
        """Test rotate callbacks fire regardless of delivered position."""
        resume_store.read.return_value = LogPosition("bin1", 100)
        tracker = CheckpointTracker(
            Checkpoint("resume", resume_store),
            Checkpoint("delivered", make_store(LogPosition("bin1", 500)))
        )
        dispatcher = EventDispatcher()
        rotate_callback = Mock()
        dispatcher.register(EventKind.ROTATE, rotate_callback)

        event = events.rotate("bin2", 4)
        tracker.process_event(event, dispatcher)

        rotate_callback.assert_called_once_with(event)
        assert tracker.resume.position == LogPosition("bin2", 4)

    def test_last_kind_tracks_every_event(self, tracker, dispatcher, events):
        """Test the previous event kind is recorded."""
        tracker.process_event(events.rotate("bin1", 4), dispatcher)
        tracker.process_event(events.format(), dispatcher)
        assert tracker.last_kind is EventKind.FORMAT


class TestBinlogEvent:
    """Test BinlogEvent validation."""

    def test_rotate_requires_target(self):
        """Test rotate without a target segment is rejected."""
        with pytest.raises(ValueError, match="rotate event requires"):
            BinlogEvent(EventKind.ROTATE)

    def test_negative_position_rejected(self):
        """Test negative positions are rejected."""
        with pytest.raises(ValueError, match="next_position must be non-negative"):
            BinlogEvent(EventKind.QUERY, next_position=-1)
