"""
相册媒体模块数据验证
定义请求/响应的数据结构
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


# ==================== 目录管理 ====================

class TermCreate(BaseModel):
    """创建目录请求"""
    vocabulary_id: str = Field(..., min_length=1, description="词汇表ID")
    name: str = Field(..., description="目录名称")
    parent_id: int = Field(0, ge=0, description="父目录ID（0为根）")


class TermDelete(BaseModel):
    """删除目录请求"""
    term_id: int = Field(..., description="目录ID")


class TermMove(BaseModel):
    """移动目录请求"""
    term_id: int = Field(..., description="目录ID")
    parent_id: int = Field(..., ge=0, description="新的父目录ID")
    weights: Dict[int, int] = Field(default_factory=dict, description="受影响目录的权重 {term_id: weight}")


class TermUpdate(BaseModel):
    """更新目录请求"""
    term_id: int = Field(..., description="目录ID")
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="目录名称")
    description: Optional[str] = Field(None, description="目录描述")


class TermResponse(BaseModel):
    """目录详情"""
    id: int
    name: str
    description: Optional[str] = None
    vid: str

    model_config = ConfigDict(from_attributes=True)


# ==================== 媒体排序 ====================

class MediaOrderItem(BaseModel):
    """
    媒体排序项
    nid 表示按相册分组，termid/field_name 表示按分类字段分组
    """
    media_id: int = Field(..., description="媒体ID")
    weight: int = Field(..., description="同级位置")
    nid: Optional[int] = Field(None, description="所属相册ID")
    termid: Optional[int] = Field(None, description="所属分类ID")
    field_name: Optional[str] = Field(None, description="容器字段名（node:/media: 前缀）")
    orig_termid: Optional[int] = Field(None, description="移动前的分类ID")
    orig_field_name: Optional[str] = Field(None, description="移动前的容器字段名")
    orig_weight: Optional[int] = Field(None, description="移动前的位置")
    album_grp: Optional[str] = Field(None, description="前端分组标识")
    field_type: Optional[str] = Field(None, description="字段类型")
    orig_field_type: Optional[str] = Field(None, description="移动前的字段类型")


class MediaOrderSave(BaseModel):
    """保存媒体排序请求"""
    view_id: Optional[str] = Field(None, description="视图ID")
    display_id: Optional[str] = Field(None, description="显示ID")
    media_order: List[MediaOrderItem] = Field(..., description="排序项列表")


class FlexgridOrderSave(BaseModel):
    """网格拖拽排序请求（按位置排序，无权重）"""
    order: List[int] = Field(..., min_length=1, description="媒体ID列表")


# ==================== 分组 ====================

class GroupingCriterion(BaseModel):
    """分组条件"""
    field: str = Field("", description="带前缀的字段名")


class GroupingApply(BaseModel):
    """应用分组请求"""
    view_id: str = Field(..., min_length=1, description="视图ID")
    display_id: str = Field(..., min_length=1, description="显示ID")
    album_id: int = Field(..., description="相册ID")
    grouping_criteria: List[GroupingCriterion] = Field(default_factory=list, description="分组条件（按层级排列）")


class GroupingFormSave(BaseModel):
    """分组表单提交（表格行 {field, weight}，列表或 {"table": {...}}）"""
    values: Any = Field(default_factory=list, description="表单行")
