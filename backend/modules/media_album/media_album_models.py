"""
相册媒体模块数据模型
定义数据库表结构

字段值统一存放在 field_values JSON 列中：
    {"field_media_album_av_media": [{"target_id": 5}, {"target_id": 7}],
     "field_media_album_av_grouping": [{"value": "media:directory"}]}
修改字段时必须整体替换 field_values，保证变更能被检测并一次性写入。
"""

from typing import Any, List, Optional

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, UniqueConstraint

from core.database import Base
from utils.timezone import get_local_time


class FieldValuesMixin:
    """字段值读写辅助"""

    def get_values(self, field_name: str) -> List[dict]:
        """获取字段的全部值（列表）"""
        values = (self.field_values or {}).get(field_name)
        return list(values) if values else []

    def set_values(self, field_name: str, values: List[dict]):
        """整体替换字段值"""
        data = dict(self.field_values or {})
        data[field_name] = list(values)
        self.field_values = data

    def has_value(self, field_name: str) -> bool:
        return field_name in (self.field_values or {})

    def target_ids(self, field_name: str) -> List[int]:
        """获取引用字段的目标ID列表（保持顺序）"""
        ids = []
        for item in self.get_values(field_name):
            target_id = item.get("target_id") if isinstance(item, dict) else None
            if target_id is not None:
                ids.append(int(target_id))
        return ids

    def first_target_id(self, field_name: str) -> Optional[int]:
        ids = self.target_ids(field_name)
        return ids[0] if ids else None

    def first_value(self, field_name: str) -> Any:
        """获取字段第一个值（value 优先，其次 target_id）"""
        values = self.get_values(field_name)
        if not values:
            return None
        item = values[0]
        if isinstance(item, dict):
            if "value" in item:
                return item["value"]
            return item.get("target_id")
        return item


class DirectoryTerm(Base):
    """
    目录分类数据表
    以父ID构成树，parent_id=0 表示挂在虚拟根节点下
    """
    __tablename__ = "media_album_terms"
    __table_args__ = {'extend_existing': True, 'comment': '目录分类表'}

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    vid = Column(String(64), nullable=False, index=True, comment="所属词汇表")
    name = Column(String(255), nullable=False, comment="目录名称")
    description = Column(Text, nullable=True, comment="目录描述")
    parent_id = Column(Integer, nullable=False, default=0, index=True, comment="父目录ID（0为根）")
    weight = Column(Integer, nullable=False, default=0, comment="同级排序权重")

    created_at = Column(DateTime(timezone=True), default=get_local_time, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=get_local_time, onupdate=get_local_time, comment="更新时间")

    def __repr__(self):
        return f"<DirectoryTerm(id={self.id}, name={self.name}, parent_id={self.parent_id})>"


class FieldConfig(Base):
    """
    字段配置表
    描述相册（node）与媒体（media）各类型上定义的字段
    """
    __tablename__ = "media_album_field_configs"
    __table_args__ = (
        UniqueConstraint("entity_type", "bundle", "field_name", name="uq_media_album_field"),
        {'extend_existing': True, 'comment': '字段配置表'},
    )

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    entity_type = Column(String(32), nullable=False, index=True, comment="实体类型 node/media")
    bundle = Column(String(64), nullable=False, index=True, comment="实体子类型")
    field_name = Column(String(128), nullable=False, comment="字段机器名")
    label = Column(String(255), nullable=False, default="", comment="字段标签")
    field_type = Column(String(64), nullable=False, default="string", comment="字段类型")
    settings = Column(JSON, nullable=True, comment="字段设置（target_type、handler_settings 等）")
    is_base = Column(Boolean, default=False, comment="是否基础字段")

    def get_setting(self, name: str, default: Any = None) -> Any:
        value = (self.settings or {}).get(name)
        return default if value is None else value

    def __repr__(self):
        return f"<FieldConfig({self.entity_type}.{self.bundle}.{self.field_name})>"


class AlbumNode(FieldValuesMixin, Base):
    """
    相册（容器）数据表
    媒体引用字段保存相册内媒体的顺序
    """
    __tablename__ = "media_album_nodes"
    __table_args__ = {'extend_existing': True, 'comment': '相册表'}

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    bundle = Column(String(64), nullable=False, default="media_album_av", comment="内容类型")
    title = Column(String(255), nullable=False, comment="相册标题")
    field_values = Column(JSON, nullable=True, comment="字段值")

    created_at = Column(DateTime(timezone=True), default=get_local_time, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=get_local_time, onupdate=get_local_time, comment="更新时间")

    def __repr__(self):
        return f"<AlbumNode(id={self.id}, title={self.title})>"


class MediaItem(FieldValuesMixin, Base):
    """
    媒体数据表
    file_path 为相对上传根目录的路径
    """
    __tablename__ = "media_album_media"
    __table_args__ = {'extend_existing': True, 'comment': '媒体表'}

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    bundle = Column(String(64), nullable=False, default="media_album_av_photo", comment="媒体类型")
    name = Column(String(255), nullable=False, comment="媒体名称")
    weight = Column(Integer, nullable=False, default=0, comment="排序权重")
    file_path = Column(String(500), nullable=True, comment="文件相对路径")
    mime_type = Column(String(100), nullable=True, comment="MIME类型")
    field_values = Column(JSON, nullable=True, comment="字段值")

    created_at = Column(DateTime(timezone=True), default=get_local_time, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=get_local_time, onupdate=get_local_time, comment="更新时间")

    def __repr__(self):
        return f"<MediaItem(id={self.id}, name={self.name})>"
