"""Shared fixtures for intakeflow tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from intakeflow.schemas import ModuleStatus, SectionStatus
from intakeflow.workflow import DashboardService, MemoryDocumentStore


class StepClock:
    """Deterministic clock: every call is one minute later than the last."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(minutes=1)
        return self.current


def make_section(section_id, order, unlocked=False):
    return {
        "sectionId": section_id,
        "order": order,
        "title": f"Section {section_id}",
        "status": "not_started",
        "unlocked": unlocked,
        "data": {},
        "version": 1,
        "metadata": {"editHistory": []},
    }


def make_template():
    """Two modules: recon [A, B, C] and scout [S1, S2]; only recon/A unlocked."""
    return {
        "modules": [
            {
                "id": "recon",
                "title": "RECON",
                "status": "not_started",
                "unlocked": True,
                "sections": [
                    make_section("A", 1, unlocked=True),
                    make_section("B", 2),
                    make_section("C", 3),
                ],
            },
            {
                "id": "scout",
                "title": "SCOUT",
                "status": "not_started",
                "unlocked": False,
                "sections": [
                    make_section("S1", 1),
                    make_section("S2", 2),
                ],
            },
        ],
        "progressTracking": {
            "overallProgress": 0,
            "moduleProgress": {},
            "milestones": [
                {"id": "recon-started", "achieved": False},
                {"id": "recon-50-percent", "achieved": False},
                {"id": "recon-completed", "achieved": False},
                {"id": "scout-completed", "achieved": False},
                {"id": "dashboard-completed", "achieved": False},
            ],
        },
    }


def assert_invariants(document):
    """Aggregates must always match a full recount of the sections."""
    total = 0
    completed_total = 0
    for module in document.modules:
        completed = sum(1 for s in module.sections if s.status == SectionStatus.COMPLETED)
        assert module.total_sections == len(module.sections)
        assert module.completed_sections == completed
        expected = (200 * completed + len(module.sections)) // (2 * len(module.sections))
        assert module.progress_percentage == expected
        if completed == 0:
            assert module.status == ModuleStatus.NOT_STARTED
        elif completed == len(module.sections):
            assert module.status == ModuleStatus.COMPLETED
        else:
            assert module.status == ModuleStatus.IN_PROGRESS
        assert document.progress_tracking.module_progress[module.id] == module.progress_percentage
        total += len(module.sections)
        completed_total += completed
    expected_overall = (200 * completed_total + total) // (2 * total)
    assert document.progress_tracking.overall_progress == expected_overall


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def template():
    return make_template()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def service(store, template, clock):
    return DashboardService(store, template=template, clock=clock)


@pytest.fixture
def initialized(service):
    """Service with a dashboard already created for user_001."""
    run(service.initialize_dashboard("user_001"))
    return service
