"""
Tests for navigation views over a dashboard document.
"""

from intakeflow.workflow import (
    SectionAvailability,
    navigation_tree,
    progress_summary,
    recommend_next_section,
)

from conftest import run


USER = "user_001"


def document(service):
    return run(service.get_dashboard_state(USER))


class TestRecommendation:
    def test_fresh_dashboard(self, initialized):
        module_id, section = recommend_next_section(document(initialized))
        assert module_id == "recon"
        assert section.section_id == "A"

    def test_in_progress_wins(self, initialized):
        run(initialized.complete_section(USER, "recon", "A"))
        run(initialized.complete_section(USER, "recon", "B", {"x": 1}))
        run(initialized.save_section_data(USER, "recon", "C", {"draft": True}))
        run(initialized.start_section(USER, "recon", "C"))

        module_id, section = recommend_next_section(document(initialized))
        assert (module_id, section.section_id) == ("recon", "C")

    def test_moves_to_next_module(self, initialized):
        for section_id in ("A", "B", "C"):
            run(initialized.complete_section(USER, "recon", section_id))

        module_id, section = recommend_next_section(document(initialized))
        assert (module_id, section.section_id) == ("scout", "S1")

    def test_nothing_left(self, initialized):
        for module_id, section_id in [
            ("recon", "A"), ("recon", "B"), ("recon", "C"), ("scout", "S1"), ("scout", "S2"),
        ]:
            run(initialized.complete_section(USER, module_id, section_id))

        assert recommend_next_section(document(initialized)) is None


class TestNavigationTree:
    def test_availability(self, initialized):
        run(initialized.complete_section(USER, "recon", "A"))
        run(initialized.start_section(USER, "recon", "B"))

        tree = navigation_tree(document(initialized))

        assert [n.availability for n in tree[0].sections] == [
            SectionAvailability.COMPLETED,
            SectionAvailability.IN_PROGRESS,
            SectionAvailability.LOCKED,
        ]
        assert tree[0].completed_count == 1
        assert tree[0].total_count == 3
        assert tree[0].sections[1].is_recommended
        assert all(n.availability == SectionAvailability.LOCKED for n in tree[1].sections)


class TestProgressSummary:
    def test_summary(self, initialized):
        run(initialized.complete_section(USER, "recon", "A"))

        summary = progress_summary(document(initialized))

        assert summary["user_id"] == USER
        assert summary["overall_progress"] == 20
        assert summary["modules"][0] == {
            "id": "recon",
            "title": "RECON",
            "status": "in-progress",
            "unlocked": True,
            "completed": 1,
            "total": 3,
            "progress": 33,
        }
        assert summary["milestones"] == ["recon-started"]
        assert summary["recommended"] == {"module_id": "recon", "section_id": "B"}

    def test_service_summary(self, initialized):
        summary = run(initialized.get_progress_summary(USER))
        assert summary["overall_progress"] == 0
        assert summary["modules"][1]["unlocked"] is False
