"""
Migration orchestrator: end-to-end scenarios on in-memory stores.

Covers the first-run branch (team created with subcollections, files and a
resolved or omitted headCoach), the team-exists branch (coach and headCoach
self-healing), fatal-to-run errors and degraded-but-continue failures.
"""
from __future__ import annotations

import pytest

from backend.datastore.memory import InMemoryDocumentStore, StoreUnavailable
from backend.datastore.ports import Reference
from backend.migration.ledger import InMemoryIdentityLedger
from backend.migration.orchestrator import MigrationOrchestrator, MigrationState
from backend.tests.utils.legacy_seed import seed_team, seed_user


def _orchestrator(legacy_store, new_store, legacy_blobs, new_blobs, **kwargs) -> MigrationOrchestrator:
    return MigrationOrchestrator(
        legacy_store, new_store, legacy_blobs, new_blobs, clock=lambda: 1234, **kwargs
    )


@pytest.fixture
def orchestrator(legacy_store, new_store, legacy_blobs, new_blobs) -> MigrationOrchestrator:
    return _orchestrator(legacy_store, new_store, legacy_blobs, new_blobs)


def test_single_head_coach_migration(orchestrator, legacy_store, new_store):
    seed_user(legacy_store, "old-1", "a@x.com", "T1", fname="Ada")
    seed_team(legacy_store, "T1", {"C1": "old-1"}, head_coach="C1")

    result = orchestrator.migrate_user_data("old-1", "new-1")

    assert result.success and result.user_migrated and result.team_migrated
    assert not result.team_already_existed
    assert orchestrator.state is MigrationState.DONE
    team = new_store.get_document("teams/T1")
    assert team["headCoach"] == Reference("users", "new-1")
    assert team["id"] == "T1" and team["migratedAt"] == 1234
    assert "ref" not in team
    assert new_store.get_document("teams/T1/coaches/C1")["userId"] == "new-1"


def test_user_document_shape(orchestrator, legacy_store, new_store):
    seed_user(legacy_store, "old-1", "a@x.com", "T1", fname="Ada", created=1_700_000_000_000)
    seed_team(legacy_store, "T1", {"C1": "old-1"}, head_coach="C1")

    orchestrator.migrate_user_data("old-1", "new-1")

    user = new_store.get_document("users/new-1")
    assert user["uid"] == "new-1"
    assert user["email"] == "a@x.com" and user["fname"] == "Ada"
    assert user["teamRef"] == Reference("teams", "T1")
    assert user["ref"] == Reference("users", "new-1")
    assert user["path"] == "users/new-1"
    assert user["dataMigrated"] is True and user["migratedAt"] == 1234
    assert "created_t" in user


def test_existing_user_document_is_merged(orchestrator, legacy_store, new_store):
    seed_user(legacy_store, "old-1", "a@x.com", "T1")
    seed_team(legacy_store, "T1", {"C1": "old-1"}, head_coach="C1")
    new_store.set_document("users/new-1", {"email": "a@x.com", "pushToken": "tok"})

    orchestrator.migrate_user_data("old-1", "new-1")

    user = new_store.get_document("users/new-1")
    assert user["pushToken"] == "tok" and user["dataMigrated"] is True
    assert ("users/new-1", True) in new_store.writes


def test_teammate_first_then_head_coach(orchestrator, legacy_store, new_store):
    seed_team(legacy_store, "T2", {"C1": "old-1", "C2": "old-2"}, head_coach="C1")
    seed_user(legacy_store, "old-1", "a@x.com", "T2")
    seed_user(legacy_store, "old-2", "b@x.com", "T2")

    first = orchestrator.migrate_user_data("old-2", "new-2")

    assert first.success and first.team_migrated
    team = new_store.get_document("teams/T2")
    assert "headCoach" not in team
    assert new_store.get_document("teams/T2/coaches/C1")["userId"] == "old-1"
    assert new_store.get_document("teams/T2/coaches/C2")["userId"] == "new-2"

    second = orchestrator.migrate_user_data("old-1", "new-1")

    assert second.success and second.team_already_existed and not second.team_migrated
    assert new_store.get_document("teams/T2")["headCoach"] == Reference("users", "new-1")
    assert new_store.get_document("teams/T2/coaches/C1")["userId"] == "new-1"
    assert new_store.get_document("teams/T2/coaches/C2")["userId"] == "new-2"


def test_teammate_found_by_email_when_head_coach_migrates_after_team_creation(
    orchestrator, legacy_store, new_store
):
    # old-2 migrated under another flow; the team does not exist yet in the new store
    seed_team(legacy_store, "T3", {"C1": "old-1", "C2": "old-2"}, head_coach="C2")
    seed_user(legacy_store, "old-1", "a@x.com", "T3")
    seed_user(legacy_store, "old-2", "b@x.com", "T3")
    new_store.set_document("users/new-2", {"email": "b@x.com", "dataMigrated": True})

    orchestrator.migrate_user_data("old-1", "new-1")

    assert new_store.get_document("teams/T3")["headCoach"] == Reference("users", "new-2")
    assert new_store.get_document("teams/T3/coaches/C2")["userId"] == "new-2"


def test_plan_activities_point_at_new_team_tags(orchestrator, legacy_store, new_store):
    seed_user(legacy_store, "old-1", "a@x.com", "T")
    seed_team(legacy_store, "T", {"C1": "old-1"}, head_coach="C1")
    legacy_store.set_document("teams/T/tags/tg1", {"name": "Speed"})
    legacy_store.set_document(
        "teams/T/plans/p1",
        {"uid": "old-1", "activities": [{"tags": [Reference("teams/T/tags", "tg1")]}]},
    )

    result = orchestrator.migrate_user_data("old-1", "new-1")

    plan = new_store.get_document("teams/T/plans/p1")
    tag_ref = plan["activities"][0]["tags"][0]
    assert tag_ref == Reference("teams/T/tags", "tg1")
    assert tag_ref.path in new_store
    assert plan["uid"] == "new-1"
    assert result.documents_copied["plans"] == 1
    assert result.documents_copied["tags"] == 1


def test_partial_failures_do_not_fail_the_run(orchestrator, legacy_store, new_store, legacy_blobs, new_blobs):
    seed_user(legacy_store, "old-1", "a@x.com", "T")
    seed_team(legacy_store, "T", {"C1": "old-1"}, head_coach="C1")
    legacy_store.set_document("teams/T/periods/p1", {"name": "Spring"})
    legacy_store.set_document("teams/T/plans/p1", {"name": "Plan"})
    legacy_store.fail_lists_under.add("teams/T/periods")
    legacy_blobs.put_blob_bytes("teams/T/files/ok.pdf", b"ok")
    legacy_blobs.put_blob_bytes("teams/T/files/x.pdf", b"x")
    legacy_blobs.fail_reads.add("teams/T/files/x.pdf")

    result = orchestrator.migrate_user_data("old-1", "new-1")

    assert result.success
    assert result.files_copied == 1 and result.files_failed == 1
    assert result.failed_subcollections == ("periods",)
    assert "plans" in result.subcollections_copied
    assert "periods" not in result.subcollections_copied
    assert new_blobs.paths() == ["teams/T/files/ok.pdf"]
    assert "teams/T/plans/p1" in new_store


def test_coaches_copied_first(orchestrator, legacy_store, new_store):
    seed_user(legacy_store, "old-1", "a@x.com", "T")
    seed_team(legacy_store, "T", {"C1": "old-1"}, head_coach="C1")
    legacy_store.set_document("teams/T/plans/p1", {"name": "Plan"})

    result = orchestrator.migrate_user_data("old-1", "new-1")

    assert result.subcollections_copied[0] == "coaches"
    written = [path for path, _merge in new_store.writes]
    assert written.index("teams/T/coaches/C1") < written.index("teams/T/plans/p1")
    # team document is the last team write, user document after it
    assert written[-2:] == ["teams/T", "users/new-1"]


def test_missing_legacy_user(orchestrator):
    result = orchestrator.migrate_user_data("ghost", "new-1")

    assert not result.success
    assert result.error == "Old user document not found"
    assert result.state == "FAILED"
    assert orchestrator.state is MigrationState.FAILED


def test_user_without_team(orchestrator, legacy_store, new_store):
    seed_user(legacy_store, "old-1", "a@x.com")

    result = orchestrator.migrate_user_data("old-1", "new-1")

    assert result.error == "User has no team reference"
    assert new_store.paths() == []


def test_team_write_failure_is_fatal(legacy_store, legacy_blobs, new_blobs):
    class _TeamWriteFails(InMemoryDocumentStore):
        def set_document(self, path, fields, *, merge=False):
            if path == "teams/T":
                raise StoreUnavailable("write_failed:teams/T")
            super().set_document(path, fields, merge=merge)

    new_store = _TeamWriteFails()
    seed_user(legacy_store, "old-1", "a@x.com", "T")
    seed_team(legacy_store, "T", {"C1": "old-1"}, head_coach="C1")

    result = _orchestrator(legacy_store, new_store, legacy_blobs, new_blobs).migrate_user_data(
        "old-1", "new-1"
    )

    assert not result.success
    assert result.error == "Failed to migrate team data"
    assert "users/new-1" not in new_store


def test_user_write_failure_is_fatal(orchestrator, legacy_store, new_store):
    seed_user(legacy_store, "old-1", "a@x.com", "T")
    seed_team(legacy_store, "T", {"C1": "old-1"}, head_coach="C1")
    new_store.fail_writes_under.add("users/new-1")

    result = orchestrator.migrate_user_data("old-1", "new-1")

    assert not result.success
    assert result.error == "Failed to create user document"
    assert result.team_migrated is True
    assert result.as_dict()["teamAlreadyExisted"] is False


def test_unexpected_store_error_becomes_failed_result(legacy_blobs, new_blobs, new_store):
    class _Down(InMemoryDocumentStore):
        def get_document(self, path):
            raise StoreUnavailable("deadline_exceeded")

    result = _orchestrator(_Down(), new_store, legacy_blobs, new_blobs).migrate_user_data("old-1", "new-1")

    assert not result.success
    assert result.error == "deadline_exceeded"


def test_patch_errors_are_not_fatal(orchestrator, legacy_store, new_store):
    seed_team(legacy_store, "T", {"C1": "old-1", "C2": "old-2"}, head_coach="C1")
    seed_user(legacy_store, "old-1", "a@x.com", "T")
    seed_user(legacy_store, "old-2", "b@x.com", "T")
    orchestrator.migrate_user_data("old-2", "new-2")
    new_store.fail_lists_under.add("teams/T/coaches")

    result = orchestrator.migrate_user_data("old-1", "new-1")

    assert result.success and result.team_already_existed
    # headCoach patch reads legacy data only, so it still lands
    assert new_store.get_document("teams/T")["headCoach"] == Reference("users", "new-1")


def test_ledger_records_successful_migration(legacy_store, new_store, legacy_blobs, new_blobs):
    seed_user(legacy_store, "old-1", "a@x.com", "T")
    seed_team(legacy_store, "T", {"C1": "old-1"}, head_coach="C1")
    ledger = InMemoryIdentityLedger()

    _orchestrator(legacy_store, new_store, legacy_blobs, new_blobs, ledger=ledger).migrate_user_data(
        "old-1", "new-1"
    )

    assert ledger.pairs == {"old-1": "new-1"}


def test_result_as_dict_shape(orchestrator, legacy_store):
    seed_user(legacy_store, "old-1", "a@x.com", "T")
    seed_team(legacy_store, "T", {"C1": "old-1"}, head_coach="C1")

    out = orchestrator.migrate_user_data("old-1", "new-1").as_dict()

    assert out["success"] is True
    assert out["userMigrated"] is True
    assert out["teamMigrated"] is True
    assert out["teamAlreadyExisted"] is False
    assert "coaches" in out["subcollectionsCopied"]
    assert out["filesCopied"] == 0
    assert out["details"]["state"] == "DONE"
    assert "error" not in out


def test_out_of_range_timestamps_do_not_abort_copy(orchestrator, legacy_store, new_store):
    seed_user(legacy_store, "old-1", "a@x.com", "T", created=10**20)
    seed_team(legacy_store, "T", {"C1": "old-1"}, head_coach="C1")
    legacy_store.set_document("teams/T/plans/p1", {"name": "One", "created": 1_700_000_000_000})
    legacy_store.set_document("teams/T/plans/p2", {"name": "Two", "created": 10**20})

    result = orchestrator.migrate_user_data("old-1", "new-1")

    assert result.success, result.error
    assert result.documents_copied["plans"] == 2
    assert "created_t" in new_store.get_document("teams/T/plans/p1")
    assert "created_t" not in new_store.get_document("teams/T/plans/p2")
    user = new_store.get_document("users/new-1")
    assert user["created"] == 10**20
    assert "created_t" not in user


def test_unexpected_error_keeps_team_flags(legacy_store, new_store, legacy_blobs, new_blobs):
    class BrokenUpsert(MigrationOrchestrator):
        def _upsert_user(self, *args, **kwargs):
            raise RuntimeError("boom")

    seed_user(legacy_store, "old-1", "a@x.com", "T")
    seed_team(legacy_store, "T", {"C1": "old-1"}, head_coach="C1")
    orchestrator = BrokenUpsert(legacy_store, new_store, legacy_blobs, new_blobs, clock=lambda: 1234)

    result = orchestrator.migrate_user_data("old-1", "new-1")

    assert not result.success
    assert result.error == "boom"
    assert result.team_migrated is True
    assert result.team_already_existed is False
    assert orchestrator.state is MigrationState.FAILED
