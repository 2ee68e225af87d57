# -*- coding: utf-8 -*-
"""
收藏夹服务测试
测试创建、更新、删除（上移/级联）以及用户隔离
"""

import pytest

from core.errors import (
    AppException, BusinessException, NotFoundException, ErrorCode
)
from modules.brain.brain_collection_service import CollectionService
from modules.brain.brain_content_service import ContentService
from modules.brain.brain_models import BrainCollection, BrainContent
from modules.brain.brain_schemas import CollectionCreate, CollectionUpdate, ContentCreate


USER_ID = 1
OTHER_USER_ID = 2


async def create(service, name, parent_id=None, **extra):
    return await service.create_collection(CollectionCreate(name=name, parent_id=parent_id, **extra))


async def add_link(db, user_id, title, collection_id=None):
    return await ContentService(db, user_id).create_content(
        ContentCreate(title=title, link="https://example.com", collection_id=collection_id)
    )


class TestBrainModels:
    """测试知识库数据模型"""

    def test_table_names(self):
        assert BrainCollection.__tablename__ == "brain_collections"
        assert BrainContent.__tablename__ == "brain_contents"


class TestCollectionSchemas:
    """测试收藏夹数据验证"""

    def test_name_is_stripped(self):
        data = CollectionCreate(name="  工作  ")
        assert data.name == "工作"
        assert data.icon == "📁"

    def test_blank_name_rejected(self):
        with pytest.raises(ValueError):
            CollectionCreate(name="   ")


class TestCreateCollection:
    """测试创建收藏夹"""

    @pytest.mark.asyncio
    async def test_create(self, db_session):
        service = CollectionService(db_session, USER_ID)
        collection = await create(service, "工作", description="工作资料")

        assert collection.id is not None
        assert collection.user_id == USER_ID
        assert collection.is_default is False
        assert collection.parent_id is None

    @pytest.mark.asyncio
    async def test_create_nested(self, db_session):
        service = CollectionService(db_session, USER_ID)
        parent = await create(service, "工作")
        child = await create(service, "项目", parent.id)
        assert child.parent_id == parent.id

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, db_session):
        """同一用户下名称唯一"""
        service = CollectionService(db_session, USER_ID)
        await create(service, "工作")

        with pytest.raises(BusinessException) as exc_info:
            await create(service, "工作")
        assert exc_info.value.code == ErrorCode.BRAIN_COLLECTION_NAME_EXISTS
        assert exc_info.value.http_status == 400

    @pytest.mark.asyncio
    async def test_same_name_for_different_users(self, db_session):
        await create(CollectionService(db_session, USER_ID), "工作")
        other = await create(CollectionService(db_session, OTHER_USER_ID), "工作")
        assert other.user_id == OTHER_USER_ID

    @pytest.mark.asyncio
    async def test_parent_of_other_user_rejected(self, db_session):
        """不能挂到别人的收藏夹下"""
        foreign = await create(CollectionService(db_session, OTHER_USER_ID), "别人的")

        with pytest.raises(NotFoundException) as exc_info:
            await create(CollectionService(db_session, USER_ID), "我的", foreign.id)
        assert exc_info.value.code == ErrorCode.BRAIN_COLLECTION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_ensure_default_is_idempotent(self, db_session):
        service = CollectionService(db_session, USER_ID)
        first = await service.ensure_default_collection("收件箱")
        second = await service.ensure_default_collection("收件箱")
        assert first.id == second.id
        assert first.is_default is True


class TestQueryCollections:
    """测试收藏夹查询"""

    @pytest.mark.asyncio
    async def test_list_with_content_counts(self, db_session):
        """列表附带直属内容数量，新建的在前"""
        service = CollectionService(db_session, USER_ID)
        work = await create(service, "工作")
        life = await create(service, "生活")
        await add_link(db_session, USER_ID, "a", work.id)
        await add_link(db_session, USER_ID, "b", work.id)
        await add_link(db_session, USER_ID, "c")

        collections = await service.list_collections()

        assert [c.id for c in collections] == [life.id, work.id]
        counts = {c.id: c.content_count for c in collections}
        assert counts == {work.id: 2, life.id: 0}

    @pytest.mark.asyncio
    async def test_list_is_user_scoped(self, db_session):
        await create(CollectionService(db_session, OTHER_USER_ID), "别人的")
        assert await CollectionService(db_session, USER_ID).list_collections() == []

    @pytest.mark.asyncio
    async def test_other_users_collection_not_found(self, db_session):
        """他人的收藏夹与不存在的表现一致"""
        foreign = await create(CollectionService(db_session, OTHER_USER_ID), "别人的")
        service = CollectionService(db_session, USER_ID)

        assert await service.get_collection(foreign.id) is None
        with pytest.raises(NotFoundException):
            await service.require_collection(foreign.id)

    @pytest.mark.asyncio
    async def test_collection_contents(self, db_session):
        service = CollectionService(db_session, USER_ID)
        work = await create(service, "工作")
        first = await add_link(db_session, USER_ID, "第一条", work.id)
        second = await add_link(db_session, USER_ID, "第二条", work.id)
        await add_link(db_session, USER_ID, "未分类")

        collection, contents = await service.get_collection_contents(work.id)

        assert collection.id == work.id
        assert [c.id for c in contents] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_tree(self, db_session):
        service = CollectionService(db_session, USER_ID)
        work = await create(service, "工作")
        await create(service, "项目", work.id)
        await create(service, "生活")

        tree = await service.get_tree()

        assert [n.name for n in tree] == ["工作", "生活"]
        assert tree[0].children[0].name == "项目"
        assert tree[0].children[0].depth == 1


class TestUpdateCollection:
    """测试更新收藏夹"""

    @pytest.mark.asyncio
    async def test_partial_update(self, db_session):
        """只修改请求中的字段"""
        service = CollectionService(db_session, USER_ID)
        work = await create(service, "工作", description="旧描述", color="#FF0000")

        updated = await service.update_collection(work.id, CollectionUpdate(icon="💼"))

        assert updated.icon == "💼"
        assert updated.name == "工作"
        assert updated.description == "旧描述"
        assert updated.color == "#FF0000"

    @pytest.mark.asyncio
    async def test_clear_description(self, db_session):
        service = CollectionService(db_session, USER_ID)
        work = await create(service, "工作", description="旧描述")
        updated = await service.update_collection(work.id, CollectionUpdate(description=None))
        assert updated.description is None

    @pytest.mark.asyncio
    async def test_rename_conflict(self, db_session):
        service = CollectionService(db_session, USER_ID)
        await create(service, "工作")
        life = await create(service, "生活")

        with pytest.raises(BusinessException) as exc_info:
            await service.update_collection(life.id, CollectionUpdate(name="工作"))
        assert exc_info.value.code == ErrorCode.BRAIN_COLLECTION_NAME_EXISTS

    @pytest.mark.asyncio
    async def test_rename_to_same_name(self, db_session):
        service = CollectionService(db_session, USER_ID)
        work = await create(service, "工作")
        updated = await service.update_collection(work.id, CollectionUpdate(name="工作"))
        assert updated.name == "工作"

    @pytest.mark.asyncio
    async def test_default_cannot_be_renamed(self, db_session):
        service = CollectionService(db_session, USER_ID)
        inbox = await service.ensure_default_collection("收件箱")

        with pytest.raises(BusinessException) as exc_info:
            await service.update_collection(inbox.id, CollectionUpdate(name="改名"))
        assert exc_info.value.code == ErrorCode.BRAIN_DEFAULT_COLLECTION_PROTECTED

        # 图标等其他属性仍可修改
        updated = await service.update_collection(inbox.id, CollectionUpdate(icon="📥"))
        assert updated.icon == "📥"


class TestDeleteCollection:
    """测试删除收藏夹"""

    @pytest.mark.asyncio
    async def test_delete_impact(self, db_session):
        service = CollectionService(db_session, USER_ID)
        root = await create(service, "根")
        child = await create(service, "子", root.id)
        grandchild = await create(service, "孙", child.id)
        await add_link(db_session, USER_ID, "a", root.id)
        await add_link(db_session, USER_ID, "b", grandchild.id)

        impact = await service.get_delete_impact(root.id)

        assert impact.has_children is True
        assert impact.child_count == 1
        assert impact.descendant_count == 2
        assert impact.content_count == 1
        assert impact.subtree_content_count == 2

    @pytest.mark.asyncio
    async def test_promote(self, db_session):
        """子收藏夹上移一级，内容变为未分类"""
        service = CollectionService(db_session, USER_ID)
        root = await create(service, "根")
        middle = await create(service, "中", root.id)
        leaf = await create(service, "叶", middle.id)
        content = await add_link(db_session, USER_ID, "内容", middle.id)
        leaf_content = await add_link(db_session, USER_ID, "叶内容", leaf.id)

        root_id, middle_id, leaf_id = root.id, middle.id, leaf.id
        content_id, leaf_content_id = content.id, leaf_content.id

        result = await service.delete_collection(middle_id, "promote")

        assert result.deleted_collection_ids == [middle_id]
        assert result.promoted_collection_ids == [leaf_id]
        assert result.uncategorized_content_count == 1

        db_session.expire_all()
        assert await service.get_collection(middle_id) is None
        moved_leaf = await service.require_collection(leaf_id)
        assert moved_leaf.parent_id == root_id
        assert (await db_session.get(BrainContent, content_id)).collection_id is None
        assert (await db_session.get(BrainContent, leaf_content_id)).collection_id == leaf_id

    @pytest.mark.asyncio
    async def test_promote_root_children_become_roots(self, db_session):
        service = CollectionService(db_session, USER_ID)
        root = await create(service, "根")
        child = await create(service, "子", root.id)
        child_id = child.id

        await service.delete_collection(root.id)

        db_session.expire_all()
        assert (await service.require_collection(child_id)).parent_id is None

    @pytest.mark.asyncio
    async def test_cascade(self, db_session):
        """级联删除整棵子树及其内容"""
        service = CollectionService(db_session, USER_ID)
        root = await create(service, "根")
        child = await create(service, "子", root.id)
        grandchild = await create(service, "孙", child.id)
        sibling = await create(service, "兄弟")
        await add_link(db_session, USER_ID, "a", child.id)
        await add_link(db_session, USER_ID, "b", grandchild.id)
        kept = await add_link(db_session, USER_ID, "c", sibling.id)
        loose = await add_link(db_session, USER_ID, "d")
        subtree_ids = sorted([root.id, child.id, grandchild.id])
        sibling_id, kept_id, loose_id = sibling.id, kept.id, loose.id

        result = await service.delete_collection(root.id, "cascade")

        assert sorted(result.deleted_collection_ids) == subtree_ids
        assert result.deleted_content_count == 2

        db_session.expire_all()
        remaining = await service.list_collections()
        assert [c.id for c in remaining] == [sibling_id]
        assert await db_session.get(BrainContent, kept_id) is not None
        assert await db_session.get(BrainContent, loose_id) is not None

    @pytest.mark.asyncio
    async def test_cascade_keeps_ancestors_and_siblings(self, db_session):
        """级联删除中间层时，祖先与兄弟收藏夹及其内容保持不变"""
        service = CollectionService(db_session, USER_ID)
        top = await create(service, "A")
        middle = await create(service, "B", top.id)
        bottom = await create(service, "C", middle.id)
        sibling = await create(service, "S", top.id)
        top_content = await add_link(db_session, USER_ID, "a", top.id)
        middle_content = await add_link(db_session, USER_ID, "b", middle.id)
        bottom_content = await add_link(db_session, USER_ID, "c", bottom.id)
        sibling_content = await add_link(db_session, USER_ID, "s", sibling.id)
        top_id, middle_id, bottom_id, sibling_id = top.id, middle.id, bottom.id, sibling.id
        kept_ids = [top_content.id, sibling_content.id]
        gone_ids = [middle_content.id, bottom_content.id]

        result = await service.delete_collection(middle_id, "cascade")

        assert sorted(result.deleted_collection_ids) == sorted([middle_id, bottom_id])
        assert result.deleted_content_count == 2

        db_session.expire_all()
        assert await service.get_collection(middle_id) is None
        assert await service.get_collection(bottom_id) is None
        assert (await service.require_collection(top_id)).parent_id is None
        assert (await service.require_collection(sibling_id)).parent_id == top_id
        for content_id in kept_ids:
            assert await db_session.get(BrainContent, content_id) is not None
        for content_id in gone_ids:
            assert await db_session.get(BrainContent, content_id) is None

    @pytest.mark.asyncio
    async def test_default_cannot_be_deleted(self, db_session):
        service = CollectionService(db_session, USER_ID)
        inbox = await service.ensure_default_collection("收件箱")

        for mode in ("promote", "cascade"):
            with pytest.raises(BusinessException) as exc_info:
                await service.delete_collection(inbox.id, mode)
            assert exc_info.value.code == ErrorCode.BRAIN_DEFAULT_COLLECTION_PROTECTED

    @pytest.mark.asyncio
    async def test_delete_other_users_collection(self, db_session):
        foreign = await create(CollectionService(db_session, OTHER_USER_ID), "别人的")

        with pytest.raises(NotFoundException):
            await CollectionService(db_session, USER_ID).delete_collection(foreign.id)

        assert await CollectionService(db_session, OTHER_USER_ID).get_collection(foreign.id) is not None

    @pytest.mark.asyncio
    async def test_database_failure_rolls_back(self, db_session, monkeypatch):
        """删除过程中数据库出错时整体回滚"""
        from sqlalchemy.exc import OperationalError

        service = CollectionService(db_session, USER_ID)
        root = await create(service, "根")
        await create(service, "子", root.id)

        async def broken(collection):
            raise OperationalError("DELETE", {}, Exception("连接断开"))

        monkeypatch.setattr(service, "_delete_cascade", broken)

        with pytest.raises(AppException) as exc_info:
            await service.delete_collection(root.id, "cascade")
        assert exc_info.value.code == ErrorCode.DATABASE_ERROR

        assert len(await service.list_collections()) == 2
