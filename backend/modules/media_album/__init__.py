"""
相册媒体模块
"""

from .media_album_manifest import manifest
from .media_album_models import DirectoryTerm, FieldConfig, AlbumNode, MediaItem
from .media_album_services import DirectoryService, MediaOrderService
from .media_album_widgets import FieldWidgetFactory
from .media_album_grouping import GroupingFieldsService, AlbumGroupingConfigService, GroupingFieldsWidget

__all__ = [
    "manifest",
    "DirectoryTerm", "FieldConfig", "AlbumNode", "MediaItem",
    "DirectoryService", "MediaOrderService",
    "FieldWidgetFactory",
    "GroupingFieldsService", "AlbumGroupingConfigService", "GroupingFieldsWidget",
]
