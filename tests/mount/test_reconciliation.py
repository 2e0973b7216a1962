"""
Tests for removing previously stored files after an update
"""

from pathlib import Path

from tests.conftest import MemoryRecord
from uploader import SanitizedFile


class Post(MemoryRecord):
    pass


class Archive(MemoryRecord):
    pass


class Gallery(MemoryRecord):
    pass


Post.mount_uploader("image")
Archive.mount_uploader("image", remove_previously_stored_files_after_update=False)
Gallery.mount_uploaders("photos")


def payload(name, content=b"content"):
    return SanitizedFile(content, filename=name)


def stored_post(record_class=Post, name="a.png", content=b"old"):
    record = record_class()
    record.image = payload(name, content)
    record.save()
    return record


class TestSingleMount:
    """Test reconciliation of a single-file mount"""

    def test_changed_path_removes_previous_file(self):
        post = stored_post()
        old_path = Path(post.image.path)

        post.image = payload("b.png", b"new")
        post.save()

        assert not old_path.exists()
        assert Path(post.image.path).read_bytes() == b"new"
        assert post.columns["image"] == "b.png"

    def test_repeated_updates(self):
        post = stored_post()
        paths = [Path(post.image.path)]

        for name in ("b.png", "c.png", "d.png"):
            post.image = payload(name, name.encode())
            post.save()
            paths.append(Path(post.image.path))

        assert [path.exists() for path in paths] == [False, False, False, True]
        assert post.columns["image"] == "d.png"
        assert post._previous_models() == {}

    def test_same_path_is_never_removed(self):
        post = stored_post()
        path = Path(post.image.path)

        post.image = payload("a.png", b"replacement")
        post.save()

        assert path.exists()
        assert path.read_bytes() == b"replacement"

    def test_flag_off_keeps_previous_file(self):
        archive = stored_post(Archive)
        old_path = Path(archive.image.path)

        archive.image = payload("b.png", b"new")
        archive.save()

        assert old_path.exists()
        assert archive._previous_models() == {}

    def test_unchanged_column_takes_no_snapshot(self):
        post = stored_post()
        post.store_previous_model_for_image()
        assert post._previous_models() == {}

    def test_snapshot_comes_from_the_store(self):
        post = stored_post()
        post.image = payload("b.png", b"new")
        post.store_previous_model_for_image()

        previous = post._previous_models()["image"]
        assert previous is not post
        assert previous.image_identifier == "a.png"
        assert post.find_previous_model_for_image().image_identifier == "a.png"

    def test_snapshot_is_discarded_after_cleanup(self):
        post = stored_post()
        post.image = payload("b.png", b"new")
        post.save()
        assert post._previous_models() == {}

    def test_remove_checkbox_on_update(self):
        post = stored_post()
        path = Path(post.image.path)

        post.remove_image = "1"
        post.save()

        assert not path.exists()
        assert post.columns["image"] is None
        assert not post.remove_image_requested

    def test_new_record_has_nothing_to_remove(self):
        post = Post()
        post.image = payload("a.png")
        post.save()
        assert Path(post.image.path).exists()


class TestMultipleMount:
    """Test reconciliation of a multiple-file mount"""

    def test_only_unreferenced_files_are_removed(self):
        gallery = Gallery()
        gallery.photos = [payload("a.png"), payload("b.png")]
        gallery.save()
        a_path, b_path = (Path(photo.path) for photo in gallery.photos)

        gallery.photos = [payload("b.png", b"new b"), payload("c.png")]
        gallery.save()

        assert not a_path.exists()
        assert b_path.exists()
        assert b_path.read_bytes() == b"new b"
        assert gallery.photos_identifiers == ["b.png", "c.png"]

    def test_clearing_removes_every_file(self):
        gallery = Gallery()
        gallery.photos = [payload("a.png"), payload("b.png")]
        gallery.save()
        paths = [Path(photo.path) for photo in gallery.photos]

        gallery.photos = []
        gallery.save()

        assert gallery.columns["photos"] is None
        assert not any(path.exists() for path in paths)
