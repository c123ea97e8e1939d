"""
字段表单控件工厂
根据字段类型生成前端表单控件描述
"""

import logging
from typing import Any, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from .media_album_models import AlbumNode, DirectoryTerm, FieldConfig, MediaItem

logger = logging.getLogger(__name__)

TEXTFIELD_TYPES = {"string", "integer", "decimal", "float"}
TEXTAREA_TYPES = {"string_long", "text", "text_long", "text_with_summary"}
SELECT_TYPES = {"list_string", "list_integer"}

# 引用目标类型 -> 数据模型
TARGET_MODELS = {
    "taxonomy_term": DirectoryTerm,
    "media": MediaItem,
    "node": AlbumNode,
}

EMPTY_OPTION = {"": "- 无 -"}


def _as_dict(field_config: Union[FieldConfig, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(field_config, FieldConfig):
        return {
            "field_name": field_config.field_name,
            "label": field_config.label,
            "field_type": field_config.field_type,
            "settings": dict(field_config.settings or {}),
            "description": (field_config.settings or {}).get("description", ""),
            "required": bool((field_config.settings or {}).get("required", False)),
        }
    return dict(field_config)


class FieldWidgetFactory:
    """字段控件工厂"""

    def __init__(self, db: Optional[AsyncSession] = None):
        self.db = db

    async def build_widget(
        self,
        field_config: Union[FieldConfig, Dict[str, Any]],
        default_value: Any = None,
        options: Optional[Dict[str, Any]] = None
    ) -> dict:
        """
        生成字段控件

        Args:
            field_config: 字段配置（FieldConfig 或等价字典）
            default_value: 默认值
            options: 额外选项；label 会替换标题，其余键直接覆盖
        """
        config = _as_dict(field_config)
        field_type = config.get("field_type") or "string"
        settings = config.get("settings") or {}

        widget = {
            "name": config.get("field_name"),
            "title": config.get("label") or config.get("field_name"),
            "description": config.get("description", ""),
            "required": bool(config.get("required", False)),
            "default_value": default_value,
        }

        if field_type in TEXTFIELD_TYPES:
            widget["type"] = "textfield"
        elif field_type in TEXTAREA_TYPES:
            widget["type"] = "textarea"
        elif field_type == "boolean":
            widget["type"] = "checkbox"
        elif field_type in SELECT_TYPES:
            widget["type"] = "select"
            widget["options"] = {**EMPTY_OPTION, **(settings.get("allowed_values") or {})}
        elif field_type == "entity_reference":
            target_type = settings.get("target_type")
            handler_settings = settings.get("handler_settings") or {}
            widget["type"] = "entity_autocomplete"
            widget["target_type"] = target_type
            widget["selection_settings"] = {
                "target_bundles": handler_settings.get("target_bundles") or [],
            }
            widget["default_value"] = await self._load_default_entity(target_type, default_value)
        else:
            widget["type"] = "textfield"

        for key, value in (options or {}).items():
            if key == "label":
                widget["title"] = value
            else:
                widget[key] = value
        return widget

    async def _load_default_entity(self, target_type: Optional[str], default_value: Any) -> Optional[int]:
        """加载引用字段的默认实体，不存在时返回 None"""
        if default_value in (None, "") or self.db is None:
            return None

        model = TARGET_MODELS.get(target_type)
        if model is None:
            logger.debug(f"未知引用目标类型: {target_type}")
            return None

        try:
            entity_id = int(default_value)
        except (TypeError, ValueError):
            return None

        entity = await self.db.get(model, entity_id)
        return entity.id if entity else None

    @staticmethod
    def extract_default_value(value: Any, field_type: str) -> Any:
        """从字段值中提取控件默认值"""
        if value is None:
            return False if field_type == "boolean" else ""

        if isinstance(value, list):
            if not value:
                return ""
            first = value[0]
            if isinstance(first, dict):
                if "value" in first:
                    return first["value"]
                if "target_id" in first:
                    return first["target_id"]
            return ""

        return value
