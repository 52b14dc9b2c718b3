"""Shared fixtures for workflow tests."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from src.rtb.workflow.adapters import InMemoryStore
from src.rtb.workflow.domain.entities import (
    Actor,
    ApplicationStatus,
    Device,
    DeviceApplication,
    DeviceCategory,
    DeviceCondition,
    RequestedQuantities,
    Role,
    School,
)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def school(store):
    return store.add_school(
        School(
            id=uuid4(),
            school_code="SCH00012",
            school_name="GS Kacyiru",
            district="Gasabo",
            province="Kigali",
        )
    )


@pytest.fixture
def other_school(store):
    return store.add_school(
        School(
            id=uuid4(),
            school_code="SCH00345",
            school_name="TSS Rubavu",
            district="Rubavu",
            province="Western",
        )
    )


@pytest.fixture
def staff():
    return Actor(user_id=uuid4(), role=Role.RTB_STAFF, name="Inventory Officer")


@pytest.fixture
def admin():
    return Actor(user_id=uuid4(), role=Role.ADMIN, name="Admin")


@pytest.fixture
def school_actor(school):
    return Actor(user_id=uuid4(), role=Role.SCHOOL, school_id=school.id, name="GS Kacyiru")


@pytest.fixture
def other_school_actor(other_school):
    return Actor(user_id=uuid4(), role=Role.SCHOOL, school_id=other_school.id, name="TSS Rubavu")


@pytest.fixture
def publisher():
    publisher = AsyncMock()
    publisher.publish.return_value = None
    return publisher


@pytest.fixture
def make_devices(store):
    """Put Available devices straight into the committed store."""
    counter = {"n": 0}

    def _make(category: DeviceCategory, count: int = 1) -> list[Device]:
        devices = []
        for _ in range(count):
            counter["n"] += 1
            device = Device(
                serial_number=f"sn-{category.value[:3]}-{counter['n']:04d}",
                category=category,
                brand="Dell",
                model="Latitude 3420",
                condition=DeviceCondition.NEW,
            )
            store.devices[device.id] = device
            devices.append(device)
        return devices

    return _make


@pytest.fixture
def make_application(store):
    """Put an application straight into the committed store."""

    def _make(
        school: School,
        applicant: Actor,
        status: ApplicationStatus = ApplicationStatus.APPROVED,
        is_eligible=True,
        **requested,
    ) -> DeviceApplication:
        application = DeviceApplication(
            school_id=school.id,
            applicant_id=applicant.user_id,
            purpose="ICT lab for level 5 students",
            letter_document_ref="letter-test.pdf",
            requested=RequestedQuantities(**(requested or {"laptops": 2, "tablets": 1})),
            status=status,
            is_eligible=None if status == ApplicationStatus.PENDING else is_eligible,
        )
        store.applications[application.id] = application
        return application

    return _make
