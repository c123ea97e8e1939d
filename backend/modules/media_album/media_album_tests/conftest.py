"""
相册媒体模块测试夹具
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from modules.media_album.media_album_models import DirectoryTerm, FieldConfig, AlbumNode, MediaItem

VOCAB = "media_directories"
PHOTO_BUNDLE = "media_album_av_photo"


@pytest.fixture
def make_term(db_session: AsyncSession):
    """目录工厂"""
    async def _make(name: str, parent_id: int = 0, weight: int = 0, vid: str = VOCAB, term_id: int = None) -> DirectoryTerm:
        term = DirectoryTerm(id=term_id, vid=vid, name=name, parent_id=parent_id, weight=weight)
        db_session.add(term)
        await db_session.commit()
        return term
    return _make


@pytest.fixture
def make_media(db_session: AsyncSession):
    """媒体工厂"""
    async def _make(
        name: str,
        directory: int = None,
        fields: dict = None,
        file_path: str = None,
        media_id: int = None,
        bundle: str = PHOTO_BUNDLE
    ) -> MediaItem:
        values = dict(fields or {})
        if directory is not None:
            values[get_settings().media_directory_field] = [{"target_id": directory}]
        media = MediaItem(id=media_id, bundle=bundle, name=name, file_path=file_path, field_values=values)
        db_session.add(media)
        await db_session.commit()
        return media
    return _make


@pytest.fixture
def make_album(db_session: AsyncSession):
    """相册工厂"""
    async def _make(
        title: str,
        media_ids=(),
        grouping=(),
        fields: dict = None,
        album_id: int = None,
        bundle: str = None
    ) -> AlbumNode:
        settings = get_settings()
        values = dict(fields or {})
        values[settings.album_media_field] = [{"target_id": mid} for mid in media_ids]
        values[settings.album_grouping_field] = [{"value": g} for g in grouping]
        album = AlbumNode(id=album_id, bundle=bundle or settings.album_bundle, title=title, field_values=values)
        db_session.add(album)
        await db_session.commit()
        return album
    return _make


@pytest_asyncio.fixture
async def field_configs(db_session: AsyncSession):
    """标准字段配置：相册类型与照片类型"""
    settings = get_settings()
    configs = [
        FieldConfig(entity_type="node", bundle=settings.album_bundle, field_name="title",
                    label="标题", field_type="string", is_base=True),
        FieldConfig(entity_type="node", bundle=settings.album_bundle, field_name="created",
                    label="创建时间", field_type="created", is_base=True),
        FieldConfig(entity_type="node", bundle=settings.album_bundle, field_name=settings.album_media_field,
                    label="媒体", field_type="entity_reference",
                    settings={"target_type": "media",
                              "handler_settings": {"target_bundles": {PHOTO_BUNDLE: PHOTO_BUNDLE}}}),
        FieldConfig(entity_type="node", bundle=settings.album_bundle, field_name=settings.album_grouping_field,
                    label="分组字段", field_type="string"),
        FieldConfig(entity_type="node", bundle=settings.album_bundle, field_name="field_location",
                    label="拍摄地点", field_type="string"),
        FieldConfig(entity_type="media", bundle=PHOTO_BUNDLE, field_name="name",
                    label="名称", field_type="string", is_base=True),
        FieldConfig(entity_type="media", bundle=PHOTO_BUNDLE, field_name=settings.media_directory_field,
                    label="目录", field_type="entity_reference",
                    settings={"target_type": "taxonomy_term",
                              "handler_settings": {"target_bundles": {VOCAB: VOCAB}}}),
        FieldConfig(entity_type="media", bundle=PHOTO_BUNDLE, field_name="field_photographer",
                    label="摄影师", field_type="string"),
        FieldConfig(entity_type="media", bundle=PHOTO_BUNDLE, field_name="field_media_album_av_photo",
                    label="图片", field_type="image"),
        # 未被相册媒体字段引用的媒体类型
        FieldConfig(entity_type="media", bundle="media_album_av_video", field_name="field_duration",
                    label="时长", field_type="integer"),
    ]
    db_session.add_all(configs)
    await db_session.commit()
    return configs
