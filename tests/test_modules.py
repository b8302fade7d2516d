"""
Tests for the module aggregator and unlock cascade.
"""

import logging

import pytest
from datetime import datetime, timezone

from intakeflow.errors import InvalidTransitionError
from intakeflow.schemas import Module, ModuleStatus, Section, SectionStatus
from intakeflow.workflow import modules as aggregator
from intakeflow.workflow import sections


NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_module(module_id, count, unlocked=False):
    return Module(
        id=module_id,
        title=module_id.upper(),
        unlocked=unlocked,
        sections=[
            Section(section_id=i, order=i, title=f"S{i}", unlocked=(unlocked and i == 1))
            for i in range(1, count + 1)
        ],
    )


def complete(modules, module_index, section_index):
    first = sections.complete(modules[module_index].sections[section_index], NOW)
    return aggregator.apply_section_change(modules, module_index, section_index, first, NOW)


class TestPercentage:
    def test_rounds_half_up(self):
        assert aggregator.percentage(1, 3) == 33
        assert aggregator.percentage(2, 3) == 67
        assert aggregator.percentage(1, 8) == 13
        assert aggregator.percentage(1, 200) == 1

    def test_bounds(self):
        assert aggregator.percentage(0, 10) == 0
        assert aggregator.percentage(10, 10) == 100

    def test_empty_module(self):
        assert aggregator.percentage(0, 0) == 0


class TestRecount:
    def test_counts_from_sections(self):
        module = make_module("recon", 3, unlocked=True)
        module.sections[0].status = SectionStatus.COMPLETED
        module.completed_sections = 7  # stale value is ignored

        previous = aggregator.recount(module)

        assert previous == ModuleStatus.NOT_STARTED
        assert module.total_sections == 3
        assert module.completed_sections == 1
        assert module.progress_percentage == 33
        assert module.status == ModuleStatus.IN_PROGRESS

    def test_completed_module_cannot_regress(self):
        module = make_module("recon", 2, unlocked=True)
        module.status = ModuleStatus.COMPLETED
        with pytest.raises(InvalidTransitionError):
            aggregator.recount(module)

    def test_is_consistent(self):
        module = make_module("recon", 2, unlocked=True)
        assert not aggregator.is_consistent(module)  # totals never counted
        aggregator.recount(module)
        assert aggregator.is_consistent(module)

    def test_resync_skips_transition_check(self):
        module = make_module("recon", 2, unlocked=True)
        module.status = ModuleStatus.COMPLETED

        aggregator.resync(module)

        assert module.status == ModuleStatus.NOT_STARTED
        assert module.total_sections == 2
        assert aggregator.is_consistent(module)

    def test_derive_status(self):
        assert aggregator.derive_status(0, 3) == ModuleStatus.NOT_STARTED
        assert aggregator.derive_status(2, 3) == ModuleStatus.IN_PROGRESS
        assert aggregator.derive_status(3, 3) == ModuleStatus.COMPLETED


class TestOverallProgress:
    def test_weighted_by_sections(self):
        modules = [make_module("recon", 3, unlocked=True), make_module("scout", 2)]
        for module in modules:
            aggregator.recount(module)
        complete(modules, 0, 0)
        complete(modules, 0, 1)

        assert aggregator.overall_progress(modules) == 40
        assert aggregator.module_progress(modules) == {"recon": 67, "scout": 0}


class TestUnlockModule:
    def test_unlocks_first_section(self):
        module = make_module("scout", 2)
        assert aggregator.unlock_module(module) is True
        assert module.unlocked
        assert module.sections[0].unlocked
        assert not module.sections[1].unlocked
        assert module.status == ModuleStatus.NOT_STARTED

    def test_completed_module_stays_completed(self):
        module = make_module("scout", 2)
        for section in module.sections:
            section.status = SectionStatus.COMPLETED
        aggregator.recount(module)

        assert aggregator.unlock_module(module) is True
        assert module.status == ModuleStatus.COMPLETED
        assert module.completed_sections == 2

    def test_already_unlocked_is_noop(self):
        module = make_module("scout", 2, unlocked=True)
        module.status = ModuleStatus.IN_PROGRESS
        assert aggregator.unlock_module(module) is False
        assert module.status == ModuleStatus.IN_PROGRESS

    def test_mark_started_once(self):
        module = make_module("recon", 1, unlocked=True)
        aggregator.mark_started(module, NOW)
        aggregator.mark_started(module, datetime(2025, 1, 1, tzinfo=timezone.utc))
        assert module.started_at == NOW


class TestCascade:
    def test_section_completion_unlocks_next_section(self):
        modules = [make_module("recon", 3, unlocked=True)]
        result = complete(modules, 0, 0)

        assert result.unlocked_section is modules[0].sections[1]
        assert modules[0].sections[1].unlocked
        assert not modules[0].sections[2].unlocked
        assert result.module_status == ModuleStatus.IN_PROGRESS
        assert result.progress_percentage == 33

    def test_recompletion_does_not_unlock(self):
        modules = [make_module("recon", 3, unlocked=True)]
        complete(modules, 0, 0)
        modules[0].sections[1].unlocked = False

        result = complete(modules, 0, 0)

        assert result.unlocked_section is None
        assert not modules[0].sections[1].unlocked
        assert modules[0].completed_sections == 1

    def test_module_completion_unlocks_next_module(self):
        modules = [make_module("recon", 2, unlocked=True), make_module("scout", 2)]
        complete(modules, 0, 0)
        result = complete(modules, 0, 1)

        assert result.module_completed
        assert result.unlocked_modules == ["scout"]
        assert modules[0].completed_at == NOW
        assert modules[1].unlocked
        assert modules[1].sections[0].unlocked

    def test_module_cascade_fires_once(self):
        modules = [make_module("recon", 1, unlocked=True), make_module("scout", 2)]
        complete(modules, 0, 0)
        sections.start(modules[1].sections[0], NOW)
        aggregator.recount(modules[1])

        result = complete(modules, 0, 0)

        assert not result.module_completed
        assert result.unlocked_modules == []
        assert modules[1].sections[0].status == SectionStatus.IN_PROGRESS

    def test_last_module_completion(self):
        modules = [make_module("sniper", 1, unlocked=True)]
        result = complete(modules, 0, 0)
        assert result.module_completed
        assert result.unlocked_modules == []

    def test_logs_unlocks(self, caplog):
        modules = [make_module("recon", 2, unlocked=True), make_module("scout", 1)]
        with caplog.at_level(logging.INFO, logger="intakeflow.workflow.modules"):
            complete(modules, 0, 0)
            complete(modules, 0, 1)
        assert "unlocked section 2 of recon" in caplog.text
        assert "unlocked module scout" in caplog.text
