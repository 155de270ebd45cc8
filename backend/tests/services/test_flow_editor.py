# backend/tests/services/test_flow_editor.py
"""Tests for flow template editing and sibling reordering."""
from uuid import uuid4

import pytest

from learnflow.errors import (
    ErrorKind,
    InvalidArgumentError,
    NotFoundError,
    PreconditionFailedError,
)
from learnflow.models import ComponentType, FlowStatus
from learnflow.services.flow_editor import FlowEditor


class TestEditing:
    def test_steps_are_appended_in_order(self, db_session):
        editor = FlowEditor(db_session)
        flow = editor.create_flow("Sales onboarding")
        for title in ("Intro", "Products", "Tools"):
            editor.add_step(flow.id, title)

        flow = editor.get_flow(flow.id)
        assert [s.title for s in flow.ordered_steps] == ["Intro", "Products", "Tools"]
        keys = [s.order_key for s in flow.ordered_steps]
        assert keys == sorted(keys)

    def test_component_payload_is_validated(self, db_session):
        editor = FlowEditor(db_session)
        flow = editor.create_flow("Security")
        step = editor.add_step(flow.id, "Basics")

        with pytest.raises(InvalidArgumentError):
            editor.add_component(step.id, ComponentType.QUIZ, "Empty quiz", payload={"questions": []})
        with pytest.raises(InvalidArgumentError):
            editor.add_component(step.id, ComponentType.TASK, "Wrong type", payload={"type": "article"})

        task = editor.add_component(
            step.id, ComponentType.TASK, "Badge", payload={"instructions": "Collect your badge"}
        )
        assert task.payload["type"] == "task"
        assert task.payload["case_sensitive"] is False

    def test_update_component_payload(self, db_session, build_flow):
        flow = build_flow(steps=1, components_per_step=1, publish=False)
        component = flow.steps[0].components[0]

        updated = FlowEditor(db_session).update_component_payload(component.id, {"body": "New text"})

        assert updated.payload["body"] == "New text"

    def test_invalid_titles_and_limits(self, db_session):
        editor = FlowEditor(db_session)
        with pytest.raises(InvalidArgumentError):
            editor.create_flow("   ")
        with pytest.raises(InvalidArgumentError):
            editor.create_flow("Flow", days_per_step=0)
        flow = editor.create_flow("Flow")
        step = editor.add_step(flow.id, "Step")
        with pytest.raises(InvalidArgumentError):
            editor.add_component(step.id, ComponentType.ARTICLE, "A", payload={}, max_attempts=0)
        with pytest.raises(InvalidArgumentError):
            editor.add_component(step.id, ComponentType.ARTICLE, "A", payload={}, minimum_score=120)

    def test_unknown_parents(self, db_session):
        editor = FlowEditor(db_session)
        with pytest.raises(NotFoundError):
            editor.add_step(uuid4(), "Orphan")
        with pytest.raises(NotFoundError):
            editor.add_component(uuid4(), ComponentType.ARTICLE, "Orphan", payload={})


class TestStatusTransitions:
    def test_publish_requires_steps(self, db_session):
        editor = FlowEditor(db_session)
        flow = editor.create_flow("Empty")

        with pytest.raises(PreconditionFailedError):
            editor.publish_flow(flow.id)

    def test_published_flow_rejects_structural_edits(self, db_session, build_flow):
        flow = build_flow(steps=1, components_per_step=1)
        editor = FlowEditor(db_session)

        assert flow.status == FlowStatus.PUBLISHED
        with pytest.raises(PreconditionFailedError):
            editor.add_step(flow.id, "Late addition")
        with pytest.raises(PreconditionFailedError):
            editor.remove_step(flow.steps[0].id)
        with pytest.raises(PreconditionFailedError):
            editor.update_component_payload(flow.steps[0].components[0].id, {"body": "x"})
        with pytest.raises(PreconditionFailedError):
            editor.publish_flow(flow.id)

    def test_archive(self, db_session, build_flow):
        flow = build_flow()
        editor = FlowEditor(db_session)

        assert editor.archive_flow(flow.id).status == FlowStatus.ARCHIVED
        with pytest.raises(PreconditionFailedError):
            editor.archive_flow(flow.id)


class TestReorderSibling:
    @pytest.fixture
    def draft(self, build_flow):
        return build_flow(steps=4, components_per_step=3, publish=False)

    def test_move_last_step_first(self, db_session, draft):
        steps = draft.ordered_steps
        untouched = {s.id: s.order_key for s in steps[:3]}

        FlowEditor(db_session).reorder_sibling(steps[3].id, 0)

        flow = FlowEditor(db_session).get_flow(draft.id)
        assert [s.title for s in flow.ordered_steps] == ["Step 4", "Step 1", "Step 2", "Step 3"]
        # Siblings are never renumbered
        assert {s.id: s.order_key for s in flow.steps if s.id in untouched} == untouched

    def test_move_to_interior_and_end(self, db_session, draft):
        editor = FlowEditor(db_session)
        steps = draft.ordered_steps

        editor.reorder_sibling(steps[0].id, 2)
        assert [s.title for s in editor.get_flow(draft.id).ordered_steps] == ["Step 2", "Step 3", "Step 1", "Step 4"]

        editor.reorder_sibling(steps[1].id, 3)
        assert [s.title for s in editor.get_flow(draft.id).ordered_steps] == ["Step 3", "Step 1", "Step 4", "Step 2"]

    def test_reorder_components(self, db_session, draft):
        step = draft.ordered_steps[0]
        last = step.ordered_components[2]

        FlowEditor(db_session).reorder_sibling(last.id, 1)

        titles = [c.title for c in FlowEditor(db_session).get_flow(draft.id).ordered_steps[0].ordered_components]
        assert titles == ["Article 1.1", "Article 1.3", "Article 1.2"]

    def test_same_position_is_a_no_op(self, db_session, draft):
        step = draft.ordered_steps[1]
        key = step.order_key

        assert FlowEditor(db_session).reorder_sibling(step.id, 1) == key

    def test_out_of_range_position(self, coordinator, draft):
        result = coordinator.reorder_sibling(draft.ordered_steps[0].id, 4)
        assert result.error == ErrorKind.INVALID_ARGUMENT

    def test_published_flow_cannot_be_reordered(self, coordinator, build_flow):
        flow = build_flow(steps=2)

        result = coordinator.reorder_sibling(flow.ordered_steps[1].id, 0)

        assert result.error == ErrorKind.PRECONDITION_FAILED

    def test_unknown_item(self, coordinator):
        assert coordinator.reorder_sibling(uuid4(), 0).error == ErrorKind.NOT_FOUND

    def test_many_moves_keep_keys_unique(self, db_session, draft):
        editor = FlowEditor(db_session)
        for i in range(30):
            flow = editor.get_flow(draft.id)
            editor.reorder_sibling(flow.ordered_steps[-1].id, i % 3)

        keys = [s.order_key for s in editor.get_flow(draft.id).steps]
        assert len(set(keys)) == len(keys) == 4
