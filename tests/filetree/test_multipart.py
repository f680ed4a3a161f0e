"""分片上传状态机测试。"""

from dataclasses import replace

import pytest

from app.packages.filetree.core.exceptions import InvalidArgumentError, NotFoundError
from app.packages.filetree.models import FileNode
from app.packages.filetree.services.file_service import FileService


def _start(db, service, name="video.mp4", path="media"):
    return service.multipart.create_multipart_upload(db, name=name, size=4, path=path)


def test_create_registers_placeholder(db_session_fixture, file_service, gateway):
    node = _start(db_session_fixture, file_service)

    assert node.upload_id in gateway.uploads
    assert node.upload_progress == 0
    assert node.upload_parts == []
    assert node.is_pending_upload
    assert node.key.startswith("media/") and node.key.endswith(".mp4")
    assert node.content_type == "video/mp4"


def test_complete_with_explicit_parts(db_session_fixture, file_service, gateway):
    node = _start(db_session_fixture, file_service)
    upload_id = node.upload_id

    a = file_service.multipart.upload_part(
        db_session_fixture, upload_id=upload_id, part_number=1, upload_progress=50, body=b"aa"
    )
    b = file_service.multipart.upload_part(
        db_session_fixture, upload_id=upload_id, part_number=2, upload_progress=90, body=b"bb"
    )
    assert a == {"eTag": '"etag-1"', "partNumber": 1}

    done = file_service.multipart.complete_multipart_upload(
        db_session_fixture, upload_id=upload_id, parts=[a, b]
    )

    assert done.upload_progress == 100
    assert done.upload_id == upload_id
    assert done.store_response["Key"] == node.key
    assert not done.is_pending_upload
    assert gateway.objects()[node.key][0] == b"aabb"


def test_complete_uses_recorded_parts(db_session_fixture, file_service, gateway):
    node = _start(db_session_fixture, file_service)
    for number, chunk in ((2, b"22"), (1, b"11"), (2, b"2b")):
        file_service.multipart.upload_part(
            db_session_fixture, upload_id=node.upload_id, part_number=number, upload_progress=60, body=chunk
        )

    db_session_fixture.expire_all()
    stored = db_session_fixture.get(FileNode, node.id)
    assert sorted(p["partNumber"] for p in stored.upload_parts) == [1, 2]

    file_service.multipart.complete_multipart_upload(db_session_fixture, upload_id=node.upload_id)
    assert gateway.objects()[node.key][0] == b"112b"


def test_complete_without_parts_is_invalid(db_session_fixture, file_service):
    node = _start(db_session_fixture, file_service)
    with pytest.raises(InvalidArgumentError):
        file_service.multipart.complete_multipart_upload(db_session_fixture, upload_id=node.upload_id)


@pytest.mark.parametrize("part_number,progress", [(0, 10), (1, 101), (1, -1)])
def test_upload_part_validates_arguments(db_session_fixture, file_service, part_number, progress):
    node = _start(db_session_fixture, file_service)
    with pytest.raises(InvalidArgumentError):
        file_service.multipart.upload_part(
            db_session_fixture,
            upload_id=node.upload_id,
            part_number=part_number,
            upload_progress=progress,
            body=b"x",
        )


def test_unknown_upload_id_is_not_found(db_session_fixture, file_service):
    with pytest.raises(NotFoundError):
        file_service.multipart.upload_part(
            db_session_fixture, upload_id="nope", part_number=1, upload_progress=1, body=b"x"
        )
    with pytest.raises(NotFoundError):
        file_service.multipart.abort_multipart_upload(db_session_fixture, upload_id="nope")


def test_abort_keeps_placeholder_by_default(db_session_fixture, file_service, gateway):
    node = _start(db_session_fixture, file_service)

    result = file_service.multipart.abort_multipart_upload(db_session_fixture, upload_id=node.upload_id)

    assert result["placeholderDeleted"] is False
    assert node.upload_id not in gateway.uploads
    assert db_session_fixture.get(FileNode, node.id) is not None


def test_abort_can_delete_placeholder(db_session_fixture, gateway, tree_config):
    service = FileService(gateway, replace(tree_config, abort_deletes_placeholder=True))
    node = _start(db_session_fixture, service)
    node_id = node.id

    result = service.multipart.abort_multipart_upload(db_session_fixture, upload_id=node.upload_id)

    assert result["placeholderDeleted"] is True
    assert db_session_fixture.get(FileNode, node_id) is None


def test_create_rejects_slash_in_name(db_session_fixture, file_service, gateway):
    with pytest.raises(InvalidArgumentError):
        _start(db_session_fixture, file_service, name="a/video.mp4")
    assert gateway.uploads == {}
    assert db_session_fixture.query(FileNode).count() == 0
