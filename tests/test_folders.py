"""
Unit tests for session folder path validation and deletion.
"""

import pytest

from wagate.session.folders import FolderGuard, PathTraversalError


class TestFolderGuard:
    @pytest.fixture(autouse=True)
    def _root(self, tmp_path):
        self.root = tmp_path / "sessions"
        self.root.mkdir()
        self.outside = tmp_path / "outside"
        self.outside.mkdir()
        (self.outside / "keep.txt").write_text("do not delete")
        self.guard = FolderGuard(self.root)

    def test_session_path(self):
        assert self.guard.session_path("alice") == self.root / "session-alice"

    def test_resolve_inside_root(self):
        assert self.guard.resolve("alice") == (self.root / "session-alice").resolve()

    def test_resolve_rejects_parent_escape(self):
        with pytest.raises(PathTraversalError):
            self.guard.resolve("x/../../outside")

    def test_resolve_rejects_root_itself(self):
        with pytest.raises(PathTraversalError):
            self.guard.resolve("x/..")

    def test_traversal_error_is_permission_error(self):
        assert issubclass(PathTraversalError, PermissionError)

    @pytest.mark.asyncio
    async def test_safe_delete_removes_folder(self):
        folder = self.root / "session-alice"
        (folder / "Default").mkdir(parents=True)
        (folder / "Default" / "Cookies").write_text("x")

        await self.guard.safe_delete("alice")

        assert not folder.exists()
        assert self.root.exists()

    @pytest.mark.asyncio
    async def test_safe_delete_absent_folder_succeeds(self):
        await self.guard.safe_delete("ghost")
        assert self.root.exists()

    @pytest.mark.asyncio
    async def test_safe_delete_rejects_dotdot_without_touching_disk(self):
        with pytest.raises(PathTraversalError):
            await self.guard.safe_delete("x/../../outside")
        assert (self.outside / "keep.txt").exists()

    @pytest.mark.asyncio
    async def test_safe_delete_rejects_symlink_escape(self):
        (self.root / "session-evil").symlink_to(self.outside, target_is_directory=True)

        with pytest.raises(PathTraversalError):
            await self.guard.safe_delete("evil")

        assert (self.outside / "keep.txt").exists()
        assert (self.root / "session-evil").is_symlink()
