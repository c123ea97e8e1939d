"""
相册媒体API路由
目录管理、媒体排序、分组配置
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.database import get_db
from core.errors import ErrorCode, NotFoundException, ValidationException, BusinessException
from core.events import event_bus, Event, Events
from core.security import TokenData, require_permission, permission_route
from schemas import success

from .media_album_manifest import PERMISSION_MANAGE
from .media_album_models import AlbumNode
from .media_album_schemas import (
    TermCreate, TermDelete, TermMove, TermUpdate, TermResponse,
    MediaOrderSave, FlexgridOrderSave, GroupingApply, GroupingFormSave
)
from .media_album_services import DirectoryService, MediaOrderService
from .media_album_grouping import GroupingFieldsService, AlbumGroupingConfigService

logger = logging.getLogger(__name__)

# 所有接口在解析请求体之前先完成权限检查
router = APIRouter(route_class=permission_route(PERMISSION_MANAGE))


async def _get_album(db: AsyncSession, album_id: int) -> AlbumNode:
    album = await db.get(AlbumNode, album_id)
    if album is None:
        raise NotFoundException("相册", album_id, code=ErrorCode.ALBUM_NOT_FOUND)
    return album


# ============ 目录管理 ============

@router.post("/directory/create-term")
async def create_term(
    data: TermCreate,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """创建目录"""
    service = DirectoryService(db)
    try:
        term = await service.create_directory_term(data.vocabulary_id, data.name, data.parent_id)
    except ValueError as e:
        raise ValidationException(str(e))
    return success(term_id=term.id, term_name=term.name)


@router.post("/directory/delete-term")
async def delete_term(
    data: TermDelete,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """删除目录（含子目录）"""
    service = DirectoryService(db)
    await service.delete_directory_term(data.term_id)
    return success()


@router.post("/directory/move-term")
async def move_term(
    data: TermMove,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """
    移动目录并更新同级权重

    权重更新与移动结果无关，移动失败时仍会保存权重
    """
    service = DirectoryService(db)
    moved = None
    move_error = None
    try:
        moved = await service.move_directory_term(data.term_id, data.parent_id)
    except ValueError as e:
        move_error = str(e)
        logger.warning(f"移动目录失败 {data.term_id} -> {data.parent_id}: {e}")

    await service.update_term_weights(data.weights)
    await db.commit()

    if move_error:
        raise BusinessException(code=ErrorCode.DIRECTORY_MOVE_INVALID, message=move_error)

    if moved is not None:
        await event_bus.publish(Event(
            name=Events.TERM_MOVED,
            source="media_album",
            data={"term_id": moved.id, "parent_id": moved.parent_id, "user_id": user.user_id}
        ))
    return success()


@router.post("/directory/update-term")
async def update_term(
    data: TermUpdate,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """更新目录名称/描述"""
    service = DirectoryService(db)
    term = await service.update_directory_term(data.term_id, data.name, data.description)
    if term is None:
        raise NotFoundException("目录", data.term_id, code=ErrorCode.DIRECTORY_TERM_NOT_FOUND)
    return success()


@router.get("/directory/term/{term_id}")
async def get_term(
    term_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """获取目录详情"""
    service = DirectoryService(db)
    term = await service.get_term(term_id)
    if term is None:
        raise NotFoundException("目录", term_id, code=ErrorCode.DIRECTORY_TERM_NOT_FOUND)
    return success(data=TermResponse.model_validate(term).model_dump())


@router.get("/directory/bootstrap")
async def directory_bootstrap(
    vocabulary_id: Optional[str] = Query(None, description="词汇表ID"),
    selected: Optional[int] = Query(None, description="选中的目录ID"),
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """目录页面初始化数据"""
    vocabulary_id = vocabulary_id or get_settings().directory_vocabulary
    service = DirectoryService(db)
    tree = await service.get_directory_tree_data(vocabulary_id, selected)
    return success(settings={
        "mediaDrop": {
            "directoryTree": tree,
            "vocabularyId": vocabulary_id,
        }
    })


@router.get("/directory/selector/{album_id}")
async def directory_selector(
    album_id: int,
    vocabulary_id: Optional[str] = Query(None, description="词汇表ID"),
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """“移动到目录”选择器数据"""
    album = await _get_album(db, album_id)
    service = DirectoryService(db)
    selector = await service.build_directory_selector(album, vocabulary_id)
    return success(**selector)


# ============ 媒体排序 ============

@router.post("/save-media-order")
async def save_media_order(
    data: MediaOrderSave,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """保存拖拽后的媒体顺序"""
    service = MediaOrderService(db)
    result = await service.save_media_order(data.model_dump())
    if not result["success"]:
        raise ValidationException(result["message"])
    return result


@router.post("/draggable-flexgrid/save-order")
async def save_flexgrid_order(
    data: FlexgridOrderSave,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """保存网格拖拽顺序"""
    service = MediaOrderService(db)
    return await service.save_flexgrid_order(data.order)


# ============ 分组 ============

@router.post("/grouping/apply")
async def apply_grouping(
    data: GroupingApply,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """按分组条件对相册媒体分组"""
    album = await _get_album(db, data.album_id)
    fields_service = GroupingFieldsService(db)

    criteria = [c.field for c in data.grouping_criteria if c.field]
    if len(criteria) > fields_service.get_max_grouping_levels():
        raise ValidationException(f"分组层级不能超过 {fields_service.get_max_grouping_levels()} 级")
    for field in criteria:
        if not await fields_service.is_valid_field(field):
            raise ValidationException(f"无效的分组字段: {field}")

    service = AlbumGroupingConfigService(db, fields_service)
    groups = await service.apply_grouping(album, criteria)
    return success(message="分组已应用", groups=groups)


@router.get("/grouping/fields")
async def grouping_fields(
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """可用于分组的字段"""
    service = GroupingFieldsService(db)
    return success(
        node_fields=await service.get_node_fields(),
        media_fields=await service.get_media_fields(),
        options=await service.get_prefixed_field_options(),
        max_levels=service.get_max_grouping_levels()
    )


@router.get("/grouping/album/{album_id}")
async def album_grouping(
    album_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """相册当前的分组设置"""
    album = await _get_album(db, album_id)
    service = AlbumGroupingConfigService(db)
    return success(
        fields=service.get_album_grouping_fields(album),
        summary=await service.get_grouping_hierarchy_summary(album)
    )


@router.post("/grouping/album/{album_id}")
async def save_album_grouping(
    album_id: int,
    data: GroupingFormSave,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """保存分组表单提交的分组设置"""
    album = await _get_album(db, album_id)
    service = AlbumGroupingConfigService(db)
    try:
        fields = await service.save_album_grouping(album, data.values)
    except ValueError as e:
        raise ValidationException(str(e))
    await db.commit()
    return success(
        message="分组设置已保存",
        fields=fields,
        summary=await service.get_grouping_hierarchy_summary(album)
    )


@router.get("/album/{album_id}/form")
async def album_form(
    album_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_permission(PERMISSION_MANAGE))
):
    """相册编辑表单（字段控件 + 分组表格）"""
    album = await _get_album(db, album_id)
    service = AlbumGroupingConfigService(db)
    return success(**await service.build_album_form(album))
