"""
Tests for Mountable: mounting, the generated accessors and the mounter memo
"""

from pathlib import Path

import pytest

from mount import MountError, Mounter
from tests.conftest import MemoryRecord
from uploader import SanitizedFile, Uploader


class AvatarUploader(Uploader):
    ignore_integrity_errors = True


class User(MemoryRecord):
    pass


class Admin(User):
    pass


class Profile(MemoryRecord):
    pass


User.mount_uploader("avatar")
Admin.mount_uploaders("badges")
Profile.mount_uploader("avatar", AvatarUploader, mount_on="avatar_identifier_column")


class TestMounting:
    """Test the class-level registry"""

    def test_anonymous_uploader(self):
        uploader = User.mounted_uploaders["avatar"]
        assert issubclass(uploader, Uploader)
        assert uploader is not Uploader
        assert uploader.__name__ == "UserAvatarUploader"

    def test_given_uploader_is_registered(self):
        assert Profile.mounted_uploaders["avatar"] is AvatarUploader

    def test_mount_returns_the_uploader(self):
        class Thing(MemoryRecord):
            pass

        assert Thing.mount_uploader("picture", AvatarUploader) is AvatarUploader

    def test_subclass_registry_is_separate(self):
        assert set(Admin.mounted_uploaders) == {"avatar", "badges"}
        assert set(User.mounted_uploaders) == {"avatar"}
        assert not hasattr(User, "badges")

    def test_options(self):
        assert Profile.mounted_uploader_options["avatar"]["mount_on"] == "avatar_identifier_column"
        assert Profile.mounted_uploader_options["avatar"]["multiple"] is False
        assert Admin.mounted_uploader_options["badges"]["multiple"] is True

    def test_option_falls_back_to_uploader(self):
        assert Profile.uploader_option("avatar", "ignore_integrity_errors") is True
        assert User.uploader_option("avatar", "ignore_integrity_errors") is False
        assert User.uploader_option("avatar", "mount_on") is None

    def test_invalid_column_name(self):
        with pytest.raises(MountError):
            User.mount_uploader("not valid")

    def test_accessors_are_installed(self):
        for name in (
            "avatar",
            "avatar_present",
            "avatar_url",
            "avatar_cache",
            "remote_avatar_url",
            "remove_avatar",
            "remove_avatar_requested",
            "remove_avatar_files",
            "store_avatar",
            "avatar_integrity_error",
            "avatar_processing_error",
            "avatar_download_error",
            "write_avatar_identifier",
            "avatar_identifier",
            "store_previous_model_for_avatar",
            "find_previous_model_for_avatar",
            "remove_previously_stored_avatar",
            "mark_remove_avatar_false",
        ):
            assert hasattr(User, name), name
        for name in ("badges", "badges_urls", "remote_badges_urls", "badges_identifiers"):
            assert hasattr(Admin, name), name


class TestSingleMount:
    """Test the accessors of a single-file mount"""

    def test_blank(self):
        user = User()
        assert isinstance(user.avatar, Uploader)
        assert user.avatar.blank
        assert not user.avatar_present
        assert user.avatar_url() is None
        assert user.avatar_identifier is None
        assert user.remote_avatar_url is None

    def test_cache_token_restores_file(self):
        user = User()
        user.avatar = SanitizedFile(b"face", filename="me.png")
        token = user.avatar_cache
        assert token and not token.startswith("[")
        identifier = user.avatar.identifier

        fresh = User()
        fresh.avatar_cache = token
        assert fresh.avatar.identifier == identifier
        assert fresh.avatar.read() == b"face"

    def test_store_serializes_a_string(self):
        user = User()
        user.avatar = SanitizedFile(b"face", filename="me.png")
        user.store_avatar()
        assert user.columns["avatar"] == "me.png"
        assert user.avatar_identifier == "me.png"
        assert user.avatar_url() == f"/uploads/user/avatar/{user.id}/me.png"

    def test_remove_then_store(self):
        user = User()
        user.avatar = SanitizedFile(b"face", filename="me.png")
        user.store_avatar()
        path = Path(user.avatar.path)

        user.remove_avatar = True
        user.store_avatar()
        assert user.avatar.blank
        assert user.avatar_identifier is None
        assert not user.remove_avatar_requested
        assert not path.exists()

    def test_mount_on_column(self):
        profile = Profile()
        profile.avatar = SanitizedFile(b"face", filename="me.png")
        profile.store_avatar()
        assert profile.columns == {"avatar_identifier_column": "me.png"}

    def test_ignored_error_from_uploader_class(self):
        profile = Profile()
        profile.avatar = SanitizedFile(b"", filename="empty.png")
        assert profile.avatar.blank
        assert profile.avatar_integrity_error is not None


class TestMemo:
    """Test how mounters are kept on records"""

    def test_mounter_is_memoized(self):
        user = User()
        assert user._mounter("avatar") is user._mounter("avatar")
        assert isinstance(user._mounter("avatar"), Mounter)

    def test_frozen_record_builds_mounters_on_demand(self):
        user = User()
        user.frozen = True
        assert user._mounter("avatar") is not user._mounter("avatar")
        assert user._active_mounters() == {}

    def test_frozen_record_is_not_written(self):
        user = User(avatar="old.png")
        user.frozen = True
        user.write_avatar_identifier()
        assert user.columns == {"avatar": "old.png"}

    def test_unmounted_column(self):
        with pytest.raises(MountError):
            User()._mounter("badges")
