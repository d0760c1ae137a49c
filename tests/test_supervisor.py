"""
Unit tests for bulk restore and flush.
"""

import pytest

from tests.fakes import settle


def make_folders(root, *session_ids):
    for session_id in session_ids:
        (root / f"session-{session_id}").mkdir(parents=True)


class TestPersistedIds:
    def test_missing_root(self, stack):
        assert stack.supervisor.persisted_ids() == []

    def test_only_session_directories(self, stack):
        make_folders(stack.root, "bob", "alice")
        (stack.root / "other").mkdir()
        (stack.root / "session-file").write_text("not a directory")

        assert stack.supervisor.persisted_ids() == ["alice", "bob"]


class TestRestore:
    @pytest.mark.asyncio
    async def test_restore_creates_missing_root(self, stack):
        restored = await stack.supervisor.restore_all()

        assert restored == []
        assert stack.root.is_dir()

    @pytest.mark.asyncio
    async def test_restore_sets_up_every_session(self, stack):
        make_folders(stack.root, "alice", "bob")

        restored = await stack.supervisor.restore_all()
        await settle()

        assert restored == ["alice", "bob"]
        assert sorted(stack.registry.ids()) == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_restore_skips_live_sessions(self, stack):
        make_folders(stack.root, "alice", "bob")
        await stack.lifecycle.setup("alice")

        restored = await stack.supervisor.restore_all()

        assert restored == ["bob"]
        assert len(stack.factory.created) == 2


class TestFlush:
    async def restore(self, stack):
        make_folders(stack.root, "alice", "bob")
        await stack.supervisor.restore_all()
        await settle()
        stack.registry.get("bob").state = "UNPAIRED"

    @pytest.mark.asyncio
    async def test_flush_only_inactive(self, stack):
        await self.restore(stack)

        terminated = await stack.supervisor.flush(only_inactive=True)

        assert terminated == ["bob"]
        assert stack.registry.exists("alice")
        assert not stack.registry.exists("bob")
        assert (stack.root / "session-alice").exists()
        assert not (stack.root / "session-bob").exists()

    @pytest.mark.asyncio
    async def test_flush_all(self, stack):
        await self.restore(stack)

        terminated = await stack.supervisor.flush(only_inactive=False)

        assert terminated == ["alice", "bob"]
        assert len(stack.registry) == 0
        assert stack.supervisor.persisted_ids() == []

    @pytest.mark.asyncio
    async def test_flush_leaves_unregistered_folders(self, stack):
        make_folders(stack.root, "stale")

        terminated = await stack.supervisor.flush(only_inactive=False)

        assert terminated == []
        assert (stack.root / "session-stale").exists()

    @pytest.mark.asyncio
    async def test_flush_isolates_failures(self, stack):
        await self.restore(stack)
        original_delete = stack.folders.safe_delete

        async def failing_delete(session_id):
            if session_id == "alice":
                raise OSError("device busy")
            await original_delete(session_id)

        stack.folders.safe_delete = failing_delete

        terminated = await stack.supervisor.flush(only_inactive=False)

        assert terminated == ["bob"]
        assert stack.registry.exists("alice")
        assert not stack.registry.exists("bob")
