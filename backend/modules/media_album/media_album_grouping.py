"""
相册分组配置
分组可用字段、相册分组设置、分组字段表单控件与分组应用
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.events import event_bus, Event, Events

from .media_album_models import AlbumNode, DirectoryTerm, FieldConfig, MediaItem
from .media_album_services import get_field_configs
from .media_album_widgets import FieldWidgetFactory

logger = logging.getLogger(__name__)

SOURCE_NODE = "node"
SOURCE_MEDIA = "media"
SOURCE_LABELS = {SOURCE_NODE: "相册", SOURCE_MEDIA: "媒体"}
EMPTY_GROUP_TITLE = "未设置"


def _field_info(config: FieldConfig, source: str) -> dict:
    return {
        "name": config.field_name,
        "label": config.label or config.field_name,
        "type": config.field_type,
        "source": source,
        "bundle": config.bundle,
        "settings": dict(config.settings or {}),
    }


def _target_bundles(handler_settings: Any) -> List[str]:
    """target_bundles 可能是列表或 {bundle: bundle} 字典"""
    bundles = (handler_settings or {}).get("target_bundles") or []
    if isinstance(bundles, dict):
        return [b for b in bundles.values() if b] or list(bundles.keys())
    return list(bundles)


class GroupingFieldsService:
    """分组可用字段"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    async def get_node_fields(self) -> Dict[str, dict]:
        """
        相册类型上可用于分组的字段

        基础字段只保留 title，排除配置中的相册字段
        """
        fields = {}
        for config in await get_field_configs(self.db, SOURCE_NODE, self.settings.album_bundle):
            if config.is_base and config.field_name != "title":
                continue
            if config.field_name in self.settings.excluded_album_fields:
                continue
            fields[config.field_name] = _field_info(config, SOURCE_NODE)
        return fields

    async def get_media_bundles(self) -> List[str]:
        """相册媒体字段允许引用的媒体类型"""
        result = await self.db.execute(
            select(FieldConfig).where(
                FieldConfig.entity_type == SOURCE_NODE,
                FieldConfig.bundle == self.settings.album_bundle,
                FieldConfig.field_name == self.settings.album_media_field
            )
        )
        config = result.scalars().first()
        bundles = _target_bundles(config.get_setting("handler_settings")) if config else []
        return bundles or list(self.settings.fallback_media_bundles)

    async def get_media_fields(self) -> Dict[str, dict]:
        """媒体类型上可用于分组的字段（只包含非基础字段）"""
        fields = {}
        for bundle in await self.get_media_bundles():
            for config in await get_field_configs(self.db, SOURCE_MEDIA, bundle):
                if config.is_base or config.field_name in self.settings.excluded_media_fields:
                    continue
                fields.setdefault(config.field_name, _field_info(config, SOURCE_MEDIA))
        return fields

    async def get_all_available_fields(self) -> Dict[str, Dict[str, dict]]:
        return {
            SOURCE_NODE: await self.get_node_fields(),
            SOURCE_MEDIA: await self.get_media_fields(),
        }

    async def get_field(self, field_name: str, source: str = SOURCE_NODE) -> Optional[dict]:
        fields = await self.get_all_available_fields()
        return fields.get(source, {}).get(field_name)

    async def get_field_options(self) -> Dict[str, Dict[str, str]]:
        """按来源分组的下拉选项"""
        fields = await self.get_all_available_fields()
        return {
            "相册字段": {name: info["label"] for name, info in fields[SOURCE_NODE].items()},
            "媒体字段": {name: info["label"] for name, info in fields[SOURCE_MEDIA].items()},
        }

    async def get_prefixed_field_options(self) -> Dict[str, str]:
        """带来源前缀的下拉选项，如 {"media:directory": "目录 (媒体)"}"""
        options = {}
        fields = await self.get_all_available_fields()
        for source in (SOURCE_NODE, SOURCE_MEDIA):
            for name, info in fields[source].items():
                options[f"{source}:{name}"] = f"{info['label']} ({SOURCE_LABELS[source]})"
        return options

    async def is_valid_field(self, prefixed_field: str) -> bool:
        source, name = AlbumGroupingConfigService.parse_field_name(prefixed_field)
        if not name:
            return False
        return await self.get_field(name, source) is not None

    @staticmethod
    def get_field_source(prefixed_field: str) -> str:
        return AlbumGroupingConfigService.parse_field_name(prefixed_field)[0]

    def get_max_grouping_levels(self) -> int:
        return self.settings.max_grouping_levels

    def get_default_grouping(self) -> List[str]:
        return list(self.settings.default_grouping)


class AlbumGroupingConfigService:
    """相册分组配置"""

    def __init__(self, db: AsyncSession, fields_service: Optional[GroupingFieldsService] = None):
        self.db = db
        self.settings = get_settings()
        self.fields_service = fields_service or GroupingFieldsService(db)
        self._term_names: Dict[int, str] = {}

    @staticmethod
    def parse_field_name(prefixed_field: str) -> Tuple[str, str]:
        """
        解析带前缀的字段名

        "media:directory" -> ("media", "directory")；无前缀视为相册字段
        """
        prefixed_field = (prefixed_field or "").strip()
        if ":" in prefixed_field:
            source, name = prefixed_field.split(":", 1)
            if source in (SOURCE_NODE, SOURCE_MEDIA):
                return source, name
        return SOURCE_NODE, prefixed_field

    def get_album_grouping_fields(self, album: Optional[AlbumNode]) -> List[str]:
        """相册上保存的分组字段（按层级顺序）"""
        if album is None or album.bundle != self.settings.album_bundle:
            return []
        fields = []
        for item in album.get_values(self.settings.album_grouping_field):
            value = item.get("value") if isinstance(item, dict) else item
            if value:
                fields.append(value)
        return fields

    async def get_album_grouping_fields_config(self, album: Optional[AlbumNode]) -> List[dict]:
        """分组字段的详细配置"""
        configs = []
        for level, prefixed in enumerate(self.get_album_grouping_fields(album), start=1):
            source, name = self.parse_field_name(prefixed)
            configs.append({
                "level": level,
                "field": prefixed,
                "source": source,
                "name": name,
                "info": await self.fields_service.get_field(name, source),
            })
        return configs

    def has_grouping_fields(self, album: Optional[AlbumNode]) -> bool:
        return bool(self.get_album_grouping_fields(album))

    async def get_grouping_hierarchy_summary(self, album: Optional[AlbumNode]) -> List[str]:
        summary = []
        for config in await self.get_album_grouping_fields_config(album):
            label = config["info"]["label"] if config["info"] else config["name"]
            suffix = " (媒体)" if config["source"] == SOURCE_MEDIA else ""
            summary.append(f"第 {config['level']} 级: {label}{suffix}")
        return summary

    async def save_album_grouping(self, album: AlbumNode, form_values: Any) -> List[str]:
        """
        保存分组表单提交的值

        Raises:
            ValueError: 非分组相册、层级超限或字段无效
        """
        if album.bundle != self.settings.album_bundle:
            raise ValueError(f"相册类型不支持分组: {album.bundle}")

        values = GroupingFieldsWidget.massage_form_values(form_values)
        max_levels = self.fields_service.get_max_grouping_levels()
        if len(values) > max_levels:
            raise ValueError(f"分组层级不能超过 {max_levels} 级")
        for item in values:
            if not await self.fields_service.is_valid_field(item["value"]):
                raise ValueError(f"无效的分组字段: {item['value']}")

        album.set_values(self.settings.album_grouping_field, values)
        await self.db.flush()
        logger.info(f"保存相册分组: album={album.id}, fields={[v['value'] for v in values]}")
        return self.get_album_grouping_fields(album)

    async def build_album_form(self, album: AlbumNode) -> dict:
        """相册编辑表单：普通字段控件与分组字段表格"""
        grouping_field = self.settings.album_grouping_field
        factory = FieldWidgetFactory(self.db)

        widgets = []
        for config in await get_field_configs(self.db, SOURCE_NODE, album.bundle):
            if config.is_base or config.field_name == grouping_field:
                continue
            default = FieldWidgetFactory.extract_default_value(
                (album.field_values or {}).get(config.field_name), config.field_type
            )
            widgets.append(await factory.build_widget(config, default_value=default))

        grouping = None
        if album.bundle == self.settings.album_bundle:
            grouping = GroupingFieldsWidget(self.fields_service).form_element(
                album.get_values(grouping_field),
                await self.fields_service.get_prefixed_field_options()
            )
        return {"fields": widgets, "grouping": grouping}

    async def apply_grouping(self, album: AlbumNode, criteria: List[str]) -> List[dict]:
        """
        按分组条件对相册媒体递归分组

        媒体保持相册中保存的顺序；空分组不返回
        """
        criteria = [c for c in criteria if c]
        media_ids = album.target_ids(self.settings.album_media_field)
        if media_ids:
            result = await self.db.execute(select(MediaItem).where(MediaItem.id.in_(media_ids)))
            media_by_id = {m.id: m for m in result.scalars().all()}
        else:
            media_by_id = {}
        medias = [media_by_id[mid] for mid in media_ids if mid in media_by_id]

        self._term_names = {}
        groups = await self._group(album, medias, criteria, 1, "")

        await event_bus.publish(Event(
            name=Events.GROUPING_APPLIED,
            source="media_album",
            data={"album_id": album.id, "criteria": criteria, "groups": len(groups)}
        ))
        logger.info(f"相册 {album.id} 已按 {criteria} 分组，共 {len(groups)} 组")
        return groups

    async def _group(
        self,
        album: AlbumNode,
        medias: List[MediaItem],
        criteria: List[str],
        level: int,
        parent_groupid: str
    ) -> List[dict]:
        if not criteria or not medias:
            return []

        source, name = self.parse_field_name(criteria[0])
        info = await self.fields_service.get_field(name, source)

        buckets: Dict[Any, List[MediaItem]] = {}
        for media in medias:
            entity = album if source == SOURCE_NODE else media
            value = album.title if name == "title" and source == SOURCE_NODE else entity.first_value(name)
            buckets.setdefault(value, []).append(media)

        groups = []
        for value, members in buckets.items():
            if not members:
                continue
            key = "" if value is None else str(value)
            groupid = f"{parent_groupid}_{level}-{key}" if parent_groupid else f"{level}-{key}"
            groups.append({
                "title": await self._group_title(value, info),
                "level": level,
                "groupid": groupid,
                "medias": [m.id for m in members],
                "subgroups": await self._group(album, members, criteria[1:], level + 1, groupid),
            })
        return groups

    async def _group_title(self, value: Any, info: Optional[dict]) -> str:
        if value is None or value == "":
            return EMPTY_GROUP_TITLE
        if (
            info
            and info["type"] == "entity_reference"
            and info["settings"].get("target_type") == "taxonomy_term"
        ):
            tid = int(value)
            if tid not in self._term_names:
                term = await self.db.get(DirectoryTerm, tid)
                self._term_names[tid] = term.name if term else EMPTY_GROUP_TITLE
            return self._term_names[tid]
        return str(value)


class GroupingFieldsWidget:
    """分组字段表单控件（每行：层级 / 字段 / 权重）"""

    def __init__(self, fields_service: Optional[GroupingFieldsService] = None):
        self.fields_service = fields_service

    def form_element(self, values: List[Any], field_options: Dict[str, str]) -> dict:
        if not field_options:
            return {
                "type": "markup",
                "level": "warning",
                "markup": "没有可用于分组的字段，请先为相册或媒体类型添加字段。",
            }

        rows = []
        for item in values or []:
            value = item.get("value") if isinstance(item, dict) else item
            if not value:
                continue
            rows.append(self._row(len(rows), value, field_options))
        rows.append(self._row(len(rows), "", field_options))

        return {
            "type": "table",
            "header": ["层级", "分组字段", "权重"],
            "tabledrag": {"group": "grouping-weight"},
            "rows": rows,
        }

    @staticmethod
    def _row(delta: int, value: str, field_options: Dict[str, str]) -> dict:
        return {
            "level": {"type": "markup", "markup": f"第 {delta + 1} 级"},
            "field": {
                "type": "select",
                "options": {"": "- 无 -", **field_options},
                "default_value": value,
            },
            "weight": {"type": "weight", "default_value": delta},
        }

    @staticmethod
    def massage_form_values(values: Any) -> List[dict]:
        """表单提交值 -> 字段值：按权重排序、去掉空行"""
        rows = values.get("table", values) if isinstance(values, dict) else values
        if isinstance(rows, dict):
            rows = list(rows.values())

        def weight_of(row: dict) -> int:
            try:
                return int(row.get("weight", 0))
            except (TypeError, ValueError):
                return 0

        rows = [row for row in (rows or []) if isinstance(row, dict)]
        rows.sort(key=weight_of)
        return [{"value": row["field"]} for row in rows if row.get("field")]
