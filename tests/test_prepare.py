"""Tests for storage/clone/prepare.py - wiping and repartitioning the destination."""

import pytest

from conftest import DESTINATION_SECTORS, NOOBS_ROWS, parted_output
from rpi_card_cloner.domain import Partition, PartitionType
from rpi_card_cloner.storage.clone.partition_table import parse_partition_table
from rpi_card_cloner.storage.clone.prepare import (
    end_sector_for,
    prepare_destination,
    recreate_partitions,
)
from rpi_card_cloner.storage.exceptions import (
    CloneCancelledError,
    DestinationPrepError,
    PartitionCreateError,
)


@pytest.fixture
def raspbian_session(session, fake_backend):
    session.partitions = parse_partition_table(fake_backend.table_output, session.source_device)
    return session


@pytest.fixture
def noobs_session(session):
    session.partitions = parse_partition_table(parted_output(NOOBS_ROWS), session.source_device)
    return session


class TestEndSectorFor:
    def test_middle_partition_keeps_end(self):
        partition = Partition(1, 8192, 532479, PartitionType.PRIMARY, "fat32")
        assert end_sector_for(partition, is_last=False) == 532479

    def test_last_partition_fills_device(self):
        partition = Partition(2, 532480, 31116287, PartitionType.PRIMARY, "ext4")
        assert end_sector_for(partition, is_last=True) is None

    def test_extended_fills_device(self):
        partition = Partition(2, 137216, 300000, PartitionType.EXTENDED)
        assert end_sector_for(partition, is_last=False) is None

    def test_extended_wins_when_also_last(self):
        partition = Partition(4, 137216, 300000, PartitionType.EXTENDED)
        assert end_sector_for(partition, is_last=True) is None


class TestPrepareDestination:
    def test_call_sequence(self, raspbian_session, fake_backend, token):
        prepare_destination(raspbian_session, fake_backend, token)

        unmounts = fake_backend.calls_to("unmount")
        assert unmounts == [(f"/dev/sda{index}",) for index in range(9, 0, -1)]
        methods = [m for m in fake_backend.methods_called() if m != "unmount"]
        assert methods == [
            "wipe_signature",
            "create_table",
            "create_partition",
            "refresh_table",
            "create_partition",
            "refresh_table",
        ]
        assert fake_backend.calls_to("create_table") == [("/dev/sda", "msdos")]

    def test_partition_geometry(self, raspbian_session, fake_backend, token):
        prepare_destination(raspbian_session, fake_backend, token)

        assert fake_backend.calls_to("create_partition") == [
            ("/dev/sda", "primary", "fat32", 8192, 532479),
            ("/dev/sda", "primary", "ext4", 532480, None),
        ]
        assert fake_backend.created[-1]["end"] == DESTINATION_SECTORS - 1

    def test_extended_layout_keeps_entries_in_order(self, noobs_session, fake_backend, token):
        prepare_destination(noobs_session, fake_backend, token)

        created = fake_backend.calls_to("create_partition")
        assert [call[1] for call in created] == [
            "primary",
            "extended",
            "logical",
            "logical",
            "logical",
        ]
        # Extended carries no filesystem hint and runs to the end
        assert created[1] == ("/dev/sda", "extended", "", 137216, None)
        assert created[2][4] == 204797
        assert fake_backend.created[-1]["end"] == DESTINATION_SECTORS - 1
        assert len(fake_backend.calls_to("refresh_table")) == 5

    def test_unmount_failures_ignored(self, raspbian_session, fake_backend, token):
        fake_backend.fail("unmount")

        prepare_destination(raspbian_session, fake_backend, token)

        assert len(fake_backend.calls_to("create_partition")) == 2

    def test_wipe_failure(self, raspbian_session, fake_backend, token):
        fake_backend.fail("wipe_signature")

        with pytest.raises(DestinationPrepError) as exc_info:
            prepare_destination(raspbian_session, fake_backend, token)

        assert exc_info.value.user_message == "Could not write to destination."
        assert "create_table" not in fake_backend.methods_called()

    def test_table_creation_failure(self, raspbian_session, fake_backend, token):
        fake_backend.fail("create_table")

        with pytest.raises(DestinationPrepError):
            prepare_destination(raspbian_session, fake_backend, token)

        assert "create_partition" not in fake_backend.methods_called()

    def test_partition_creation_failure(self, raspbian_session, fake_backend, token):
        fake_backend.fail("create_partition", when=lambda *args: args[1] == "primary" and args[3] == 532480)

        with pytest.raises(PartitionCreateError) as exc_info:
            prepare_destination(raspbian_session, fake_backend, token)

        assert exc_info.value.index == 2
        assert len(fake_backend.calls_to("refresh_table")) == 1

    def test_refresh_failure_is_warning(self, raspbian_session, fake_backend, token):
        fake_backend.fail("refresh_table")

        prepare_destination(raspbian_session, fake_backend, token)

        assert len(fake_backend.calls_to("create_partition")) == 2

    def test_cancelled_before_start_touches_nothing(self, raspbian_session, fake_backend, token):
        token.cancel()

        with pytest.raises(CloneCancelledError):
            prepare_destination(raspbian_session, fake_backend, token)

        assert fake_backend.methods_called() == ["unmount"]


class TestRecreatePartitions:
    def test_cancel_after_first_partition(self, raspbian_session, fake_backend, token):
        original = fake_backend.create_partition

        def create_then_cancel(*args):
            original(*args)
            token.cancel()

        fake_backend.create_partition = create_then_cancel

        with pytest.raises(CloneCancelledError):
            recreate_partitions(raspbian_session, fake_backend, token)

        assert len(fake_backend.calls_to("create_partition")) == 1
        assert fake_backend.calls_to("refresh_table") == []
