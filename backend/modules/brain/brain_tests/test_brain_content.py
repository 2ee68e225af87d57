# -*- coding: utf-8 -*-
"""
知识库内容服务测试
测试链接与文件内容的增删改查、移动、上传
"""

import pytest

from core.errors import BusinessException, NotFoundException, ErrorCode
from models import FileRecord
from modules.brain.brain_collection_service import CollectionService
from modules.brain.brain_content_service import ContentService, file_download_path
from modules.brain.brain_schemas import (
    CollectionCreate, ContentCreate, ContentUpdate, ContentInfo
)


USER_ID = 1
OTHER_USER_ID = 2

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF_BYTES = b"%PDF-1.4\n" + b"\x00" * 64


async def make_collection(db, user_id, name):
    return await CollectionService(db, user_id).create_collection(CollectionCreate(name=name))


class TestContentSchemas:
    """测试内容数据验证"""

    def test_defaults(self):
        data = ContentCreate(title="文章")
        assert data.type == "link"
        assert data.tags == []
        assert data.collection_id is None

    def test_invalid_type(self):
        with pytest.raises(ValueError):
            ContentCreate(title="文章", type="video")

    def test_update_tracks_explicit_null(self):
        """区分未传与显式传 null"""
        assert "collection_id" not in ContentUpdate(title="新标题").model_fields_set
        assert "collection_id" in ContentUpdate(collection_id=None).model_fields_set

    def test_info_normalizes_tags(self):
        from datetime import datetime
        now = datetime.now()
        info = ContentInfo(id=1, title="a", type="link", tags=None, created_at=now, updated_at=now)
        assert info.tags == []


class TestCreateContent:
    """测试创建内容"""

    @pytest.mark.asyncio
    async def test_create_uncategorized(self, db_session):
        service = ContentService(db_session, USER_ID)
        content = await service.create_content(ContentCreate(
            title="FastAPI 文档",
            link="https://fastapi.tiangolo.com",
            description="Web 框架",
            tags=["python", "web"]
        ))

        assert content.id is not None
        assert content.collection_id is None
        assert content.user_id == USER_ID
        assert content.tags == ["python", "web"]

    @pytest.mark.asyncio
    async def test_create_in_collection(self, db_session):
        collection = await make_collection(db_session, USER_ID, "工作")
        content = await ContentService(db_session, USER_ID).create_content(
            ContentCreate(title="周报", collection_id=collection.id)
        )
        assert content.collection_id == collection.id

    @pytest.mark.asyncio
    async def test_create_in_foreign_collection(self, db_session):
        """不能放进别人的收藏夹"""
        foreign = await make_collection(db_session, OTHER_USER_ID, "别人的")

        with pytest.raises(NotFoundException) as exc_info:
            await ContentService(db_session, USER_ID).create_content(
                ContentCreate(title="文章", collection_id=foreign.id)
            )
        assert exc_info.value.code == ErrorCode.BRAIN_COLLECTION_NOT_FOUND


class TestQueryContent:
    """测试内容查询"""

    @pytest.mark.asyncio
    async def test_other_users_content_not_found(self, db_session):
        foreign = await ContentService(db_session, OTHER_USER_ID).create_content(ContentCreate(title="别人的"))
        service = ContentService(db_session, USER_ID)

        assert await service.get_content(foreign.id) is None
        with pytest.raises(NotFoundException) as exc_info:
            await service.require_content(foreign.id)
        assert exc_info.value.code == ErrorCode.BRAIN_CONTENT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_list_filters(self, db_session):
        collection = await make_collection(db_session, USER_ID, "工作")
        service = ContentService(db_session, USER_ID)
        a = await service.create_content(ContentCreate(title="a", collection_id=collection.id))
        b = await service.create_content(ContentCreate(title="b"))
        c = await service.create_content(ContentCreate(title="c", type="file"))
        await ContentService(db_session, OTHER_USER_ID).create_content(ContentCreate(title="d"))

        items, total = await service.list_contents()
        assert total == 3
        assert [i.id for i in items] == [c.id, b.id, a.id]

        items, total = await service.list_contents(collection_id=collection.id)
        assert [i.id for i in items] == [a.id]

        items, total = await service.list_contents(uncategorized=True)
        assert sorted(i.id for i in items) == sorted([b.id, c.id])

        items, total = await service.list_contents(content_type="file")
        assert [i.id for i in items] == [c.id]

    @pytest.mark.asyncio
    async def test_list_pagination(self, db_session):
        service = ContentService(db_session, USER_ID)
        for i in range(5):
            await service.create_content(ContentCreate(title=f"第{i}条"))

        items, total = await service.list_contents(page=2, size=2)
        assert total == 5
        assert [i.title for i in items] == ["第2条", "第1条"]

    @pytest.mark.asyncio
    async def test_stats(self, db_session):
        collection = await make_collection(db_session, USER_ID, "工作")
        service = ContentService(db_session, USER_ID)
        await service.create_content(ContentCreate(title="a", collection_id=collection.id))
        await service.create_content(ContentCreate(title="b"))
        await service.create_content(ContentCreate(title="c", type="file"))

        stats = await service.get_stats()
        assert stats.total == 3
        assert stats.link == 2
        assert stats.file == 1
        assert stats.uncategorized == 2


class TestUpdateContent:
    """测试更新与移动内容"""

    @pytest.mark.asyncio
    async def test_partial_update(self, db_session):
        service = ContentService(db_session, USER_ID)
        content = await service.create_content(ContentCreate(
            title="旧标题", link="https://old.example.com", description="描述", tags=["a"]
        ))

        updated = await service.update_content(content.id, ContentUpdate(title="新标题"))

        assert updated.title == "新标题"
        assert updated.link == "https://old.example.com"
        assert updated.description == "描述"
        assert updated.tags == ["a"]

    @pytest.mark.asyncio
    async def test_update_without_collection_keeps_it(self, db_session):
        """未传 collection_id 时保持原收藏夹"""
        collection = await make_collection(db_session, USER_ID, "工作")
        service = ContentService(db_session, USER_ID)
        content = await service.create_content(ContentCreate(title="a", collection_id=collection.id))

        updated = await service.update_content(content.id, ContentUpdate(description="补充"))
        assert updated.collection_id == collection.id

    @pytest.mark.asyncio
    async def test_update_explicit_null_uncategorizes(self, db_session):
        collection = await make_collection(db_session, USER_ID, "工作")
        service = ContentService(db_session, USER_ID)
        content = await service.create_content(ContentCreate(title="a", collection_id=collection.id))

        updated = await service.update_content(content.id, ContentUpdate(collection_id=None))
        assert updated.collection_id is None

    @pytest.mark.asyncio
    async def test_update_link_ignored_for_file(self, db_session):
        """文件内容的链接由系统维护"""
        service = ContentService(db_session, USER_ID)
        content = await service.create_content(ContentCreate(title="文件", type="file", link="/x"))

        updated = await service.update_content(content.id, ContentUpdate(link="https://evil.example.com"))
        assert updated.link == "/x"

    @pytest.mark.asyncio
    async def test_move(self, db_session):
        first = await make_collection(db_session, USER_ID, "甲")
        second = await make_collection(db_session, USER_ID, "乙")
        service = ContentService(db_session, USER_ID)
        content = await service.create_content(ContentCreate(title="a", collection_id=first.id))

        moved = await service.move_content(content.id, second.id)
        assert moved.collection_id == second.id

        moved = await service.move_content(content.id, None)
        assert moved.collection_id is None

    @pytest.mark.asyncio
    async def test_move_to_foreign_collection(self, db_session):
        foreign = await make_collection(db_session, OTHER_USER_ID, "别人的")
        service = ContentService(db_session, USER_ID)
        content = await service.create_content(ContentCreate(title="a"))

        with pytest.raises(NotFoundException):
            await service.move_content(content.id, foreign.id)

        assert (await service.require_content(content.id)).collection_id is None


class TestDeleteContent:
    """测试删除内容"""

    @pytest.mark.asyncio
    async def test_delete(self, db_session):
        service = ContentService(db_session, USER_ID)
        content = await service.create_content(ContentCreate(title="a"))
        await service.delete_content(content.id)
        assert await service.get_content(content.id) is None

    @pytest.mark.asyncio
    async def test_delete_other_users_content(self, db_session):
        foreign = await ContentService(db_session, OTHER_USER_ID).create_content(ContentCreate(title="别人的"))

        with pytest.raises(NotFoundException):
            await ContentService(db_session, USER_ID).delete_content(foreign.id)

        assert await ContentService(db_session, OTHER_USER_ID).get_content(foreign.id) is not None


class TestUploadFile:
    """测试文件上传"""

    @pytest.mark.asyncio
    async def test_upload_text(self, db_session, tmp_workspace):
        service = ContentService(db_session, USER_ID)
        content = await service.upload_file("notes.md", "# 标题".encode("utf-8"), mime_type="text/markdown")

        assert content.type == "file"
        assert content.title == "notes.md"
        assert content.link == file_download_path(content.id)

        record = await service.get_file(content.id)
        assert record.filename == "notes.md"
        assert record.mime_type == "text/markdown"
        assert (tmp_workspace["storage_dir"] / record.storage_path).is_file()

    @pytest.mark.asyncio
    async def test_upload_with_title_and_collection(self, db_session, tmp_workspace):
        collection = await make_collection(db_session, USER_ID, "图片")
        content = await ContentService(db_session, USER_ID).upload_file(
            "photo.png", PNG_BYTES, title="截图", description="界面截图", collection_id=collection.id
        )

        assert content.title == "截图"
        assert content.collection_id == collection.id
        record = await db_session.get(FileRecord, content.file_id)
        assert record.mime_type == "image/png"
        assert record.file_size == len(PNG_BYTES)

    @pytest.mark.asyncio
    async def test_upload_type_mismatch(self, db_session, tmp_workspace):
        """扩展名与文件头不符时拒绝"""
        with pytest.raises(BusinessException) as exc_info:
            await ContentService(db_session, USER_ID).upload_file("fake.png", PDF_BYTES)
        assert exc_info.value.code == ErrorCode.FILE_TYPE_NOT_ALLOWED
        assert not any(tmp_workspace["storage_dir"].rglob("*.png"))

    @pytest.mark.asyncio
    async def test_upload_disallowed_extension(self, db_session, tmp_workspace):
        with pytest.raises(BusinessException) as exc_info:
            await ContentService(db_session, USER_ID).upload_file("run.exe", b"MZ\x90\x00")
        assert exc_info.value.code == ErrorCode.FILE_TYPE_NOT_ALLOWED

    @pytest.mark.asyncio
    async def test_upload_too_large(self, db_session, tmp_workspace):
        import utils.storage
        from utils.storage import StorageManager

        utils.storage._storage_manager = StorageManager(max_size=10)

        with pytest.raises(BusinessException) as exc_info:
            await ContentService(db_session, USER_ID).upload_file("big.txt", b"x" * 11)
        assert exc_info.value.code == ErrorCode.FILE_TOO_LARGE
        assert exc_info.value.http_status == 413

    @pytest.mark.asyncio
    async def test_delete_removes_file(self, db_session, tmp_workspace):
        service = ContentService(db_session, USER_ID)
        content = await service.upload_file("notes.txt", b"hello")
        record = await service.get_file(content.id)
        path = tmp_workspace["storage_dir"] / record.storage_path

        await service.delete_content(content.id)

        assert not path.exists()
        assert await db_session.get(FileRecord, record.id) is None

    @pytest.mark.asyncio
    async def test_delete_survives_missing_file(self, db_session, tmp_workspace):
        """文件已不存在时，内容照常删除"""
        service = ContentService(db_session, USER_ID)
        content = await service.upload_file("notes.txt", b"hello")
        record = await service.get_file(content.id)
        (tmp_workspace["storage_dir"] / record.storage_path).unlink()

        await service.delete_content(content.id)
        assert await service.get_content(content.id) is None

    @pytest.mark.asyncio
    async def test_cascade_removes_uploaded_files(self, db_session, tmp_workspace):
        """级联删除收藏夹时一并清理上传的文件"""
        collection = await make_collection(db_session, USER_ID, "附件")
        service = ContentService(db_session, USER_ID)
        content = await service.upload_file("notes.txt", b"hello", collection_id=collection.id)
        record = await service.get_file(content.id)
        record_id = record.id
        path = tmp_workspace["storage_dir"] / record.storage_path

        result = await CollectionService(db_session, USER_ID).delete_collection(collection.id, "cascade")

        assert result.deleted_content_count == 1
        assert not path.exists()
        db_session.expire_all()
        assert await db_session.get(FileRecord, record_id) is None

    @pytest.mark.asyncio
    async def test_get_file_for_link_content(self, db_session):
        service = ContentService(db_session, USER_ID)
        content = await service.create_content(ContentCreate(title="a"))
        with pytest.raises(NotFoundException):
            await service.get_file(content.id)
