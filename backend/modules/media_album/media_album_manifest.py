"""
相册媒体模块清单
定义模块元信息、路由入口、权限声明等
"""

from core.loader import ModuleManifest

# 目录管理、媒体排序、分组配置统一使用的权限
PERMISSION_MANAGE = "media_album.manage"


manifest = ModuleManifest(
    id="media_album",
    name="相册媒体",
    version="1.0.0",
    description="相册媒体整理：目录分类树、拖拽排序、分组字段配置",
    icon="🗂️",
    author="Media Album",

    router_prefix="/api/v1/media-album",

    menu={
        "title": "相册媒体",
        "icon": "🗂️",
        "path": "/media-album",
        "order": 15,
        "children": [
            {"title": "目录管理", "path": "/media-album/directories", "icon": "📁"},
            {"title": "媒体排序", "path": "/media-album/order", "icon": "🔀"}
        ]
    },

    permissions=[
        PERMISSION_MANAGE
    ],

    enabled=True,
)
