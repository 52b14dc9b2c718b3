"""Tests for workflow domain entities."""

from uuid import uuid4

import pytest

from src.rtb.core.exceptions import InvalidTransitionError, ValidationError
from src.rtb.workflow.domain.entities import (
    ApplicationStatus,
    AssignedDevice,
    AssignmentRow,
    BulkFailure,
    BulkResult,
    Device,
    DeviceApplication,
    DeviceCategory,
    DeviceCondition,
    DeviceRow,
    DeviceStatus,
    InventoryStats,
    RequestedQuantities,
    parse_enum,
)


def _device(**kwargs) -> Device:
    defaults = dict(
        serial_number="SN001",
        category=DeviceCategory.LAPTOP,
        brand="HP",
        model="ProBook 450",
        condition=DeviceCondition.NEW,
    )
    defaults.update(kwargs)
    return Device(**defaults)


def _application(**kwargs) -> DeviceApplication:
    defaults = dict(
        school_id=uuid4(),
        applicant_id=uuid4(),
        purpose="Computer lab",
        letter_document_ref="letter-x.pdf",
        requested=RequestedQuantities(laptops=2, tablets=1),
    )
    defaults.update(kwargs)
    return DeviceApplication(**defaults)


class TestRequestedQuantities:
    """Tests for RequestedQuantities."""

    def test_total_and_per_category(self):
        requested = RequestedQuantities(laptops=2, tablets=1, projectors=1)
        assert requested.total == 4
        assert requested.for_category(DeviceCategory.LAPTOP) == 2
        assert requested.for_category(DeviceCategory.DESKTOP) == 0
        assert requested.to_dict() == {
            "laptops": 2,
            "desktops": 0,
            "tablets": 1,
            "projectors": 1,
            "others": 0,
        }

    def test_rejects_negative(self):
        with pytest.raises(ValidationError) as exc_info:
            RequestedQuantities(laptops=-1)
        assert exc_info.value.field == "laptops"

    def test_rejects_non_integer(self):
        with pytest.raises(ValidationError):
            RequestedQuantities(tablets=True)
        with pytest.raises(ValidationError):
            RequestedQuantities(desktops=1.5)


class TestDevice:
    """Tests for Device entity."""

    def test_normalizes_serial_number(self):
        device = _device(serial_number="  ab-1234x ")
        assert device.serial_number == "AB-1234X"

    def test_requires_serial_number(self):
        with pytest.raises(ValidationError):
            _device(serial_number="   ")

    def test_new_device_is_available_without_tag(self):
        device = _device()
        assert device.status == DeviceStatus.AVAILABLE
        assert device.asset_tag is None
        assert device.school_id is None

    def test_mark_assigned_sets_school_and_tag(self):
        device = _device()
        school_id = uuid4()
        device.mark_assigned(school_id, "LAP/GAS/SCH00012/0001")

        assert device.status == DeviceStatus.ASSIGNED
        assert device.school_id == school_id
        assert device.asset_tag == "LAP/GAS/SCH00012/0001"

    def test_cannot_assign_twice(self):
        device = _device()
        device.mark_assigned(uuid4(), "LAP/GAS/SCH00012/0001")

        with pytest.raises(InvalidTransitionError) as exc_info:
            device.mark_assigned(uuid4(), "LAP/GAS/SCH00012/0002")
        assert exc_info.value.current == DeviceStatus.ASSIGNED
        assert device.asset_tag == "LAP/GAS/SCH00012/0001"

    def test_release_clears_school_and_tag(self):
        device = _device()
        device.mark_assigned(uuid4(), "LAP/GAS/SCH00012/0001")
        device.release()

        assert device.status == DeviceStatus.AVAILABLE
        assert device.school_id is None
        assert device.asset_tag is None

    def test_release_requires_assigned(self):
        with pytest.raises(InvalidTransitionError):
            _device().release()

    def test_maintenance_from_assigned_drops_tag(self):
        device = _device()
        device.mark_assigned(uuid4(), "LAP/GAS/SCH00012/0001")
        device.change_maintenance_status(DeviceStatus.MAINTENANCE)

        assert device.status == DeviceStatus.MAINTENANCE
        assert device.asset_tag is None
        assert device.school_id is None

    def test_repaired_device_returns_to_stock(self):
        device = _device(status=DeviceStatus.MAINTENANCE)
        device.change_maintenance_status(DeviceStatus.AVAILABLE)
        assert device.is_available

    def test_written_off_is_terminal(self):
        device = _device(status=DeviceStatus.WRITTEN_OFF)
        for status in (DeviceStatus.AVAILABLE, DeviceStatus.MAINTENANCE):
            with pytest.raises(InvalidTransitionError):
                device.change_maintenance_status(status)

    def test_to_dict(self):
        data = _device().to_dict()
        assert data["status"] == "Available"
        assert data["category"] == "Laptop"
        assert data["asset_tag"] is None


class TestDeviceApplication:
    """Tests for the application state machine."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (ApplicationStatus.PENDING, ApplicationStatus.UNDER_REVIEW),
            (ApplicationStatus.PENDING, ApplicationStatus.APPROVED),
            (ApplicationStatus.PENDING, ApplicationStatus.REJECTED),
            (ApplicationStatus.PENDING, ApplicationStatus.CANCELLED),
            (ApplicationStatus.UNDER_REVIEW, ApplicationStatus.UNDER_REVIEW),
            (ApplicationStatus.UNDER_REVIEW, ApplicationStatus.APPROVED),
            (ApplicationStatus.UNDER_REVIEW, ApplicationStatus.REJECTED),
            (ApplicationStatus.APPROVED, ApplicationStatus.ASSIGNED),
            (ApplicationStatus.ASSIGNED, ApplicationStatus.RECEIVED),
        ],
    )
    def test_allowed_transitions(self, current, target):
        application = _application(status=current)
        application.transition_to(target)
        assert application.status == target

    @pytest.mark.parametrize(
        "current,target",
        [
            (ApplicationStatus.PENDING, ApplicationStatus.ASSIGNED),
            (ApplicationStatus.PENDING, ApplicationStatus.RECEIVED),
            (ApplicationStatus.UNDER_REVIEW, ApplicationStatus.CANCELLED),
            (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED),
            (ApplicationStatus.APPROVED, ApplicationStatus.RECEIVED),
            (ApplicationStatus.REJECTED, ApplicationStatus.APPROVED),
            (ApplicationStatus.RECEIVED, ApplicationStatus.ASSIGNED),
            (ApplicationStatus.CANCELLED, ApplicationStatus.PENDING),
        ],
    )
    def test_rejected_transitions(self, current, target):
        application = _application(status=current)
        with pytest.raises(InvalidTransitionError) as exc_info:
            application.transition_to(target)

        assert application.status == current
        assert exc_info.value.details["current"] == current
        assert exc_info.value.details["attempted"] == target

    def test_terminal_states(self):
        assert _application(status=ApplicationStatus.REJECTED).is_terminal
        assert _application(status=ApplicationStatus.RECEIVED).is_terminal
        assert _application(status=ApplicationStatus.CANCELLED).is_terminal
        assert not _application(status=ApplicationStatus.APPROVED).is_terminal

    def test_new_application_is_pending_and_undecided(self):
        application = _application()
        assert application.status == ApplicationStatus.PENDING
        assert application.is_eligible is None
        assert application.is_open

    def test_record_review(self):
        application = _application()
        reviewer = uuid4()
        application.record_review(
            ApplicationStatus.APPROVED,
            reviewer_id=reviewer,
            is_eligible=True,
            review_notes="Meets criteria",
        )
        assert application.status == ApplicationStatus.APPROVED
        assert application.is_eligible is True
        assert application.reviewed_by == reviewer
        assert application.reviewed_at is not None

    def test_record_assignment_requires_devices(self):
        application = _application(status=ApplicationStatus.APPROVED, is_eligible=True)
        with pytest.raises(ValidationError):
            application.record_assignment([], uuid4())
        assert application.status == ApplicationStatus.APPROVED

    def test_assigned_devices_are_immutable_once_set(self):
        application = _application(status=ApplicationStatus.APPROVED, is_eligible=True)
        entry = AssignedDevice(uuid4(), "SN1", DeviceCategory.LAPTOP, "LAP/GAS/SCH1/0001")
        application.record_assignment([entry], uuid4())

        assert application.status == ApplicationStatus.ASSIGNED
        assert application.assigned_devices == (entry,)
        assert application.assigned_count(DeviceCategory.LAPTOP) == 1

        with pytest.raises(InvalidTransitionError):
            application.record_assignment([entry], uuid4())

    def test_second_receipt_fails_and_keeps_state(self):
        application = _application(status=ApplicationStatus.ASSIGNED)
        application.record_receipt(notes="All received")
        confirmed_at = application.confirmed_at

        with pytest.raises(InvalidTransitionError):
            application.record_receipt(notes="Again")

        assert application.status == ApplicationStatus.RECEIVED
        assert application.confirmed_at == confirmed_at
        assert application.confirmation_notes == "All received"

    def test_to_dict(self):
        data = _application().to_dict()
        assert data["status"] == "Pending"
        assert data["requested"]["laptops"] == 2
        assert data["assigned_devices"] == []


class TestParseEnum:
    """Tests for parse_enum."""

    def test_case_insensitive(self):
        assert parse_enum(DeviceCategory, " laptop ", "category") == DeviceCategory.LAPTOP
        assert parse_enum(DeviceStatus, "written off", "status") == DeviceStatus.WRITTEN_OFF

    def test_passes_members_through(self):
        assert parse_enum(DeviceCondition, DeviceCondition.FAIR, "condition") == DeviceCondition.FAIR

    def test_unknown_value(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_enum(DeviceCategory, "Phone", "category")
        assert exc_info.value.field == "category"
        assert "Laptop" in exc_info.value.message


class TestRows:
    """Tests for bulk row types."""

    def test_device_row_normalizes(self):
        row = DeviceRow(
            row_number=2,
            serial_number=" sn1 ",
            category=" Laptop ",
            brand=" Dell ",
            model="Latitude",
            condition="",
        )
        assert row.serial_number == "SN1"
        assert row.category == "Laptop"
        assert row.brand == "Dell"

    def test_assignment_row_normalizes(self):
        row = AssignmentRow(row_number=2, serial_number="sn1", school_code=" sch00012 ")
        assert row.serial_number == "SN1"
        assert row.school_code == "SCH00012"


class TestBulkResult:
    def test_summary(self):
        result = BulkResult(successful=["a", "b"], failed=[BulkFailure("SN3", "Duplicate")])
        assert result.total == 3
        assert result.summary == "2 successful, 1 failed"
        assert result.failed[0].to_dict()["code"] == "VALIDATION_ERROR"


class TestInventoryStats:
    def test_add_counts_every_dimension(self):
        stats = InventoryStats()
        stats.add(_device())
        stats.add(_device(serial_number="SN2", status=DeviceStatus.MAINTENANCE))

        assert stats.total == 2
        assert stats.by_status["Available"] == 1
        assert stats.by_status["Maintenance"] == 1
        assert stats.by_category["Laptop"] == 2
        assert stats.by_condition["New"] == 2
