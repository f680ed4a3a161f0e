"""FileService 查询与变更操作测试。"""

import pytest

from app.packages.filetree.core.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from app.packages.filetree.models import File, FileNode, Folder


def _upload(db, service, name, **kwargs):
    return service.uploads.upload_file(db, buffer=b"data", name=name, use_original_name=True, **kwargs)


def test_create_folder(db_session_fixture, file_service, gateway):
    folder = file_service.create_folder(db_session_fixture, path="docs/2024")

    assert folder.name == "2024"
    assert folder.key == "docs/2024/"
    assert folder.variant == Folder()
    assert gateway.keys() == ["docs/", "docs/2024/"]


@pytest.mark.parametrize("path", ["", "   ", "/"])
def test_create_folder_blank_name_is_conflict(db_session_fixture, file_service, path):
    with pytest.raises(ConflictError):
        file_service.create_folder(db_session_fixture, path=path)


def test_rename_keeps_key(db_session_fixture, file_service, gateway):
    docs = file_service.create_folder(db_session_fixture, path="docs")

    renamed = file_service.rename(db_session_fixture, docs.id, name="archive")
    child = file_service.create_folder(db_session_fixture, path="x", parent_id=docs.id)

    assert renamed.name == "archive"
    assert renamed.key == "docs/"
    # 子节点沿用父文件夹已存储的 key 作前缀
    assert child.key == "docs/x/"


@pytest.mark.parametrize("name", ["", "  ", "a/b"])
def test_rename_rejects_invalid_names(db_session_fixture, file_service, name):
    docs = file_service.create_folder(db_session_fixture, path="docs")
    with pytest.raises(InvalidArgumentError):
        file_service.rename(db_session_fixture, docs.id, name=name)


def test_create_folder_after_rename_gets_fresh_key(db_session_fixture, file_service, gateway):
    docs = file_service.create_folder(db_session_fixture, path="docs")
    file_service.rename(db_session_fixture, docs.id, name="archive")

    again = file_service.create_folder(db_session_fixture, path="docs")

    assert again.id != docs.id
    assert again.name == "docs"
    # 原前缀仍归重命名后的文件夹所有
    assert again.key != "docs/"
    assert again.key.startswith("docs") and again.key.endswith("/")
    assert len(again.key) == len("docs/") + 6
    assert sorted(gateway.keys()) == sorted(["docs/", again.key])


def test_move_file_into_folder(db_session_fixture, file_service, gateway):
    target = file_service.create_folder(db_session_fixture, path="target")
    uploaded = _upload(db_session_fixture, file_service, "a.txt")

    moved = file_service.move(db_session_fixture, uploaded["id"], parent_id=target.id)

    assert moved.parent_id == target.id
    assert moved.key == "target/a.txt"
    assert moved.variant == File(content_type="text/plain")
    assert gateway.keys() == ["target/", "target/a.txt"]

    back = file_service.move(db_session_fixture, uploaded["id"], parent_id=None)
    assert back.parent_id is None
    assert back.key == "a.txt"
    assert gateway.keys() == ["a.txt", "target/"]


def test_move_folder_rewrites_subtree(db_session_fixture, file_service, gateway):
    dest = file_service.create_folder(db_session_fixture, path="dest")
    _upload(db_session_fixture, file_service, "r.pdf", path="src/sub")
    src = db_session_fixture.query(FileNode).filter(FileNode.key == "src/").one()

    moved = file_service.move(db_session_fixture, src.id, parent_id=dest.id)

    assert moved.key == "dest/src/"
    keys = sorted(n.key for n in db_session_fixture.query(FileNode).all())
    assert keys == ["dest/", "dest/src/", "dest/src/sub/", "dest/src/sub/r.pdf"]
    assert gateway.keys() == keys
    assert gateway.objects()["dest/src/sub/r.pdf"][0] == b"data"
    crumbs = file_service.get_file_path(
        db_session_fixture,
        db_session_fixture.query(FileNode).filter(FileNode.name == "r.pdf").one().id,
    )
    assert [c["name"] for c in crumbs] == ["dest", "src", "sub", "r.pdf"]


def test_move_onto_taken_key_is_disambiguated(db_session_fixture, file_service, gateway):
    target = file_service.create_folder(db_session_fixture, path="target")
    _upload(db_session_fixture, file_service, "a.txt", parent_id=target.id)
    loose = _upload(db_session_fixture, file_service, "a.txt")
    gateway.objects()["a.txt"] = (b"loose", "text/plain")

    moved = file_service.move(db_session_fixture, loose["id"], parent_id=target.id)

    assert moved.key != "target/a.txt"
    assert moved.key.startswith("target/a") and moved.key.endswith(".txt")
    assert gateway.objects()["target/a.txt"][0] == b"data"
    assert gateway.objects()[moved.key][0] == b"loose"
    assert "a.txt" not in gateway.objects()


def test_move_with_pending_multipart_rejected(db_session_fixture, file_service, gateway):
    dest = file_service.create_folder(db_session_fixture, path="dest")
    pending = file_service.multipart.create_multipart_upload(
        db_session_fixture, name="v.mp4", size=4, path="media"
    )
    media_id = pending.parent_id

    with pytest.raises(ConflictError):
        file_service.move(db_session_fixture, media_id, parent_id=dest.id)

    assert file_service.get_node(db_session_fixture, media_id).key == "media/"
    assert not [c for c in gateway.calls if c[0] == "copy"]


def test_move_into_own_subtree_rejected(db_session_fixture, file_service):
    a = file_service.create_folder(db_session_fixture, path="a")
    b = file_service.create_folder(db_session_fixture, path="a/b")

    with pytest.raises(InvalidArgumentError):
        file_service.move(db_session_fixture, a.id, parent_id=b.id)
    with pytest.raises(InvalidArgumentError):
        file_service.move(db_session_fixture, a.id, parent_id=a.id)


def test_move_into_file_rejected(db_session_fixture, file_service):
    a = file_service.create_folder(db_session_fixture, path="a")
    uploaded = _upload(db_session_fixture, file_service, "f.txt")

    with pytest.raises(InvalidArgumentError):
        file_service.move(db_session_fixture, a.id, parent_id=uploaded["id"])


def test_list_children_folders_first_and_paginated(db_session_fixture, file_service):
    parent = file_service.create_folder(db_session_fixture, path="p")
    for name in ("zeta", "alpha"):
        file_service.create_folder(db_session_fixture, path=name, parent_id=parent.id)
    for name in ("b.txt", "A.txt", "c.txt"):
        _upload(db_session_fixture, file_service, name, parent_id=parent.id)

    first = file_service.list_children(db_session_fixture, parent_id=parent.id, page=1, page_size=3)
    second = file_service.list_children(db_session_fixture, parent_id=parent.id, page=2, page_size=3)

    assert [r["name"] for r in first["records"]] == ["alpha", "zeta", "A.txt"]
    assert [r["name"] for r in second["records"]] == ["b.txt", "c.txt"]
    assert first["pagination"] == {"page": 1, "pageSize": 3, "total": 5}


def test_list_children_of_file_rejected(db_session_fixture, file_service):
    uploaded = _upload(db_session_fixture, file_service, "f.txt")
    with pytest.raises(InvalidArgumentError):
        file_service.list_children(db_session_fixture, parent_id=uploaded["id"])


def test_get_file_path(db_session_fixture, file_service):
    uploaded = _upload(db_session_fixture, file_service, "r.pdf", path="docs/2024")

    crumbs = file_service.get_file_path(db_session_fixture, uploaded["id"])

    assert [c["name"] for c in crumbs] == ["docs", "2024", "r.pdf"]
    assert crumbs[0]["parentId"] is None
    assert crumbs[-1]["kind"] == "file"


def test_get_file_body(db_session_fixture, file_service):
    uploaded = _upload(db_session_fixture, file_service, "f.txt")
    folder = file_service.create_folder(db_session_fixture, path="d")

    node, stream = file_service.get_file_body(db_session_fixture, uploaded["id"])
    assert node.id == uploaded["id"]
    assert b"".join(stream.chunks) == b"data"

    with pytest.raises(InvalidArgumentError):
        file_service.get_file_body(db_session_fixture, folder.id)
    with pytest.raises(NotFoundError):
        file_service.get_file_body(db_session_fixture, "missing")


def test_signed_upload_url_registers_node(db_session_fixture, file_service):
    data = file_service.get_signed_upload_url(db_session_fixture, name="clip.mov", path="videos")

    node = db_session_fixture.get(FileNode, data["id"])
    assert node.key == data["key"]
    assert data["key"].startswith("videos/") and data["key"].endswith(".mov")
    assert data["url"] == f"https://signed.test/test-bucket/{data['key']}?op=put&ttl=600"
    assert data["expiresIn"] == 600


def test_signed_upload_url_rejects_slash_in_name(db_session_fixture, file_service, gateway):
    with pytest.raises(InvalidArgumentError):
        file_service.get_signed_upload_url(db_session_fixture, name="x/clip.mov")
    assert db_session_fixture.query(FileNode).count() == 0


def test_signed_download_url(db_session_fixture, file_service):
    uploaded = _upload(db_session_fixture, file_service, "f.txt")

    data = file_service.get_signed_download_url(db_session_fixture, uploaded["id"])

    assert data["url"] == "https://signed.test/test-bucket/f.txt?op=get&ttl=600"
