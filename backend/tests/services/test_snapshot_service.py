# backend/tests/services/test_snapshot_service.py
"""Tests for snapshot creation, integrity checks and retention."""
import threading
from datetime import date, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from learnflow.errors import InvalidArgumentError, NotFoundError, OperationCancelled
from learnflow.models import Base, ComponentType, FlowAssignment, FlowSnapshot, StepSnapshot
from learnflow.models.base import utcnow
from learnflow.services.flow_editor import FlowEditor
from learnflow.services.snapshot_service import SnapshotService


class TestCreateSnapshot:
    def test_copies_graph_in_order_key_order(self, db_session, build_flow):
        flow = build_flow(steps=3, components_per_step=2, publish=False)
        snapshot = SnapshotService(db_session).create_snapshot(flow)

        assert snapshot.version == 1
        assert snapshot.original_flow_id == flow.id
        assert snapshot.title == flow.title
        assert [s.title for s in snapshot.ordered_steps] == ["Step 1", "Step 2", "Step 3"]
        assert [s.order_key for s in snapshot.ordered_steps] == [s.order_key for s in flow.ordered_steps]
        first = snapshot.ordered_steps[0]
        assert first.original_step_id == flow.ordered_steps[0].id
        assert [c.title for c in first.ordered_components] == ["Article 1.1", "Article 1.2"]
        assert first.ordered_components[0].payload["type"] == "article"

    def test_settings_are_frozen(self, db_session, build_flow):
        flow = build_flow(publish=False, require_sequential_completion=False, days_per_step=3, allow_pause=False)
        snapshot = SnapshotService(db_session).create_snapshot(flow)

        assert snapshot.require_sequential_completion is False
        assert snapshot.days_per_step == 3
        assert snapshot.allow_pause is False

    def test_versions_increase_by_one(self, db_session, build_flow):
        flow = build_flow(publish=False)
        service = SnapshotService(db_session)

        first = service.create_snapshot(flow)
        second = service.create_snapshot(flow)

        assert second.version == first.version + 1
        assert [s.version for s in service.snapshots.get_all_versions(flow.id)] == [1, 2]

    def test_snapshot_survives_template_edits(self, db_session, build_flow):
        """Adding, moving and removing steps leaves an existing snapshot untouched."""
        flow = build_flow(steps=3, publish=False)
        snapshot = SnapshotService(db_session).create_snapshot(flow)
        before = [(s.title, s.order_key) for s in snapshot.ordered_steps]

        editor = FlowEditor(db_session)
        editor.add_step(flow.id, "Step 4")
        editor.reorder_sibling(flow.ordered_steps[2].id, 0)
        editor.remove_step(flow.ordered_steps[1].id)

        db_session.expire_all()
        reloaded = SnapshotService(db_session).get_snapshot(snapshot.id)
        assert [(s.title, s.order_key) for s in reloaded.ordered_steps] == before
        assert len(reloaded.steps) == 3

    def test_none_flow_is_invalid(self, db_session):
        with pytest.raises(InvalidArgumentError):
            SnapshotService(db_session).create_snapshot(None)

    def test_unknown_flow_is_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            SnapshotService(db_session).create_snapshot_by_id(uuid4())

    def test_cancellation_leaves_nothing_behind(self, db_session, build_flow):
        flow = build_flow(publish=False)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelled):
            SnapshotService(db_session).create_snapshot(flow, cancel=cancel)

        assert db_session.query(FlowSnapshot).count() == 0
        assert db_session.query(StepSnapshot).count() == 0

    def test_concurrent_snapshots_get_distinct_versions(self, tmp_path):
        """Two threads snapshotting the same flow never share a version number."""
        engine = create_engine(
            f"sqlite:///{tmp_path / 'snapshots.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = SessionLocal()
        editor = FlowEditor(setup)
        flow = editor.create_flow("Concurrent")
        step = editor.add_step(flow.id, "Only step")
        editor.add_component(step.id, ComponentType.ARTICLE, "Read", payload={"body": "x"})
        flow_id = flow.id
        setup.close()

        versions = []
        errors = []
        barrier = threading.Barrier(4)

        def worker():
            db = SessionLocal()
            try:
                barrier.wait()
                versions.append(SnapshotService(db).create_snapshot_by_id(flow_id).version)
            except Exception as e:
                errors.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(versions) == [1, 2, 3, 4]
        engine.dispose()


class TestQueries:
    def test_get_or_create_latest_snapshot(self, db_session, build_flow):
        flow = build_flow(publish=False)
        service = SnapshotService(db_session)

        created = service.get_or_create_latest_snapshot(flow.id)
        again = service.get_or_create_latest_snapshot(flow.id)

        assert created.id == again.id
        assert db_session.query(FlowSnapshot).count() == 1

    def test_get_snapshot_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            SnapshotService(db_session).get_snapshot(uuid4())

    def test_snapshot_differences(self, db_session, build_flow):
        flow = build_flow(steps=2, publish=False)
        service = SnapshotService(db_session)
        snapshot = service.create_snapshot(flow)

        editor = FlowEditor(db_session)
        flow.title = "Onboarding 2.0"
        db_session.commit()
        editor.add_step(flow.id, "Bonus step")
        editor.add_component(flow.ordered_steps[0].id, ComponentType.TASK, "Meet the team",
                             payload={"instructions": "Say hello"})

        differences = service.get_snapshot_differences(flow.id, snapshot.id)

        assert "Title changed: 'Onboarding' -> 'Onboarding 2.0'" in differences
        assert "Step count changed: 2 -> 3" in differences
        assert "Step 'Bonus step' was added" in differences
        assert "Component count in step 'Step 1' changed: 2 -> 3" in differences

    def test_no_differences_right_after_snapshot(self, db_session, build_flow):
        flow = build_flow(publish=False)
        service = SnapshotService(db_session)
        snapshot = service.create_snapshot(flow)

        assert service.get_snapshot_differences(flow.id, snapshot.id) == []


class TestValidateIntegrity:
    def test_fresh_snapshot_is_valid(self, db_session, build_flow):
        flow = build_flow(publish=False)
        service = SnapshotService(db_session)
        snapshot = service.create_snapshot(flow)

        report = service.validate_integrity(snapshot.id)

        assert report.valid is True
        assert report.reasons == []

    def test_missing_snapshot_is_reported_not_raised(self, db_session):
        report = SnapshotService(db_session).validate_integrity(uuid4())
        assert report.valid is False
        assert "does not exist" in report.reasons[0]

    def test_duplicate_component_keys_are_reported(self, db_session, build_flow):
        flow = build_flow(steps=1, components_per_step=2, publish=False)
        service = SnapshotService(db_session)
        snapshot = service.create_snapshot(flow)

        components = snapshot.steps[0].components
        components[1].order_key = components[0].order_key
        snapshot.title = "  "
        db_session.commit()

        report = service.validate_integrity(snapshot.id)

        assert report.valid is False
        assert any("Duplicate component order key" in r for r in report.reasons)
        assert "Snapshot has an empty title" in report.reasons


class TestCleanupOldSnapshots:
    def _age(self, db_session, snapshot, days):
        snapshot.created_at = utcnow() - timedelta(days=days)
        db_session.commit()

    def _assign(self, db_session, flow, snapshot):
        assignment = FlowAssignment(
            user_id=uuid4(),
            flow_id=flow.id,
            flow_snapshot_id=snapshot.id,
            deadline=date.today() + timedelta(days=10),
            assigned_by_id=uuid4(),
        )
        db_session.add(assignment)
        db_session.commit()
        return assignment

    def test_deletes_only_the_unreferenced_middle_snapshot(self, db_session, build_flow):
        flow = build_flow(publish=False)
        service = SnapshotService(db_session)
        oldest, middle, newest = (service.create_snapshot(flow) for _ in range(3))
        self._age(db_session, oldest, 400)
        self._age(db_session, middle, 390)
        self._age(db_session, newest, 380)
        self._assign(db_session, flow, oldest)

        deleted = service.cleanup_old_snapshots(older_than_days=365, keep_minimum=1)

        assert deleted == 1
        remaining = {s.id for s in service.snapshots.get_all_versions(flow.id)}
        assert remaining == {oldest.id, newest.id}

    def test_snapshot_of_cancelled_assignment_is_kept(self, db_session, build_flow):
        flow = build_flow(publish=False)
        service = SnapshotService(db_session)
        old, newest = service.create_snapshot(flow), service.create_snapshot(flow)
        self._age(db_session, old, 400)
        self._age(db_session, newest, 390)
        assignment = self._assign(db_session, flow, old)
        assignment.cancel("Left the company")
        db_session.commit()

        assert service.cleanup_old_snapshots(older_than_days=365, keep_minimum=0) == 1
        assert [s.id for s in service.snapshots.get_all_versions(flow.id)] == [old.id]

    def test_recent_snapshots_are_kept(self, db_session, build_flow):
        flow = build_flow(publish=False)
        service = SnapshotService(db_session)
        service.create_snapshot(flow)
        service.create_snapshot(flow)

        assert service.cleanup_old_snapshots(older_than_days=365, keep_minimum=0) == 0

    def test_keep_minimum_is_respected(self, db_session, build_flow):
        flow = build_flow(publish=False)
        service = SnapshotService(db_session)
        snapshots = [service.create_snapshot(flow) for _ in range(4)]
        for i, snapshot in enumerate(snapshots):
            self._age(db_session, snapshot, 500 - i)

        deleted = service.cleanup_old_snapshots(older_than_days=365, keep_minimum=2)

        assert deleted == 2
        remaining = [s.version for s in service.snapshots.get_all_versions(flow.id)]
        assert remaining == [3, 4]

    def test_snapshots_of_other_flows_are_independent(self, db_session, build_flow):
        first = build_flow(publish=False, title="First")
        second = build_flow(publish=False, title="Second")
        service = SnapshotService(db_session)
        for flow in (first, second):
            for _ in range(2):
                self._age(db_session, service.create_snapshot(flow), 400)

        assert service.cleanup_old_snapshots(older_than_days=365, keep_minimum=1) == 2
        assert len(service.snapshots.get_all_versions(first.id)) == 1
        assert len(service.snapshots.get_all_versions(second.id)) == 1

    def test_negative_arguments_rejected(self, db_session):
        with pytest.raises(InvalidArgumentError):
            SnapshotService(db_session).cleanup_old_snapshots(older_than_days=-1)
