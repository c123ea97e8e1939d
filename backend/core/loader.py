"""
模块加载器
负责扫描、校验、加载模块
按命名规范发现 modules/<id>/<id>_manifest.py 与 <id>_router.py
"""

import importlib
import importlib.util
import sys
import logging
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from pathlib import Path
from datetime import datetime

from fastapi import FastAPI, APIRouter

from .events import event_bus, Events
from utils.timezone import get_local_time

logger = logging.getLogger(__name__)


# 确保backend目录在sys.path中，以便模块可以导入core等包
_backend_path = str(Path(__file__).parent.parent.absolute())
if _backend_path not in sys.path:
    sys.path.insert(0, _backend_path)


@dataclass
class ModuleAssets:
    """模块前端资源配置"""
    css: List[str] = field(default_factory=list)  # CSS文件路径列表
    js: List[str] = field(default_factory=list)   # JS文件路径列表


@dataclass
class ModuleManifest:
    """模块清单协议"""
    id: str                          # 唯一标识
    name: str                        # 显示名称
    version: str                     # 版本号
    description: str = ""            # 描述
    icon: str = "📦"                 # 图标
    author: str = ""                 # 作者

    # 路由配置
    router_prefix: str = ""          # 路由前缀，如 /api/v1/media-album
    router: Optional[APIRouter] = None

    # 菜单配置
    menu: Dict[str, Any] = field(default_factory=dict)

    # 权限声明
    permissions: List[str] = field(default_factory=list)

    # 前端资源
    assets: ModuleAssets = field(default_factory=ModuleAssets)

    # 状态
    enabled: bool = True


@dataclass
class LoadedModule:
    """已加载模块信息"""
    manifest: ModuleManifest
    path: Path
    loaded_at: datetime = field(default_factory=get_local_time)


class ModuleLoader:
    """模块加载器"""

    def __init__(self, app: FastAPI, modules_dir: Optional[str] = None):
        self.app = app
        self.modules: Dict[str, LoadedModule] = {}
        if modules_dir:
            self.modules_path = Path(modules_dir)
        else:
            self.modules_path = Path(_backend_path) / "modules"

    def scan_modules(self) -> List[str]:
        """扫描模块目录"""
        if not self.modules_path.exists():
            logger.warning(f"模块目录不存在: {self.modules_path}")
            return []

        module_ids = []
        for item in sorted(self.modules_path.iterdir()):
            if item.is_dir() and not item.name.startswith("_"):
                # 按命名规范，清单文件为 {module_id}_manifest.py
                manifest_file = item / f"{item.name}_manifest.py"
                if manifest_file.exists():
                    module_ids.append(item.name)
                    logger.debug(f"发现模块: {item.name}")

        return module_ids

    def _import_module(self, module_name: str, file_path: Path) -> Optional[Any]:
        """安全导入模块（优先使用标准导入，失败则回退到路径加载）"""
        try:
            return importlib.import_module(module_name)
        except ImportError:
            if not file_path.exists():
                return None
            try:
                spec = importlib.util.spec_from_file_location(module_name, file_path)
                if spec and spec.loader:
                    module = importlib.util.module_from_spec(spec)
                    sys.modules[module_name] = module
                    spec.loader.exec_module(module)
                    return module
            except Exception as e:
                logger.error(f"路径加载模块失败 {module_name} ({file_path}): {e}")
                return None
        return None

    def load_manifest(self, module_id: str) -> Optional[ModuleManifest]:
        """加载模块清单"""
        manifest_file = self.modules_path / module_id / f"{module_id}_manifest.py"
        module = self._import_module(f"modules.{module_id}.{module_id}_manifest", manifest_file)
        if not module:
            return None

        if not hasattr(module, "manifest"):
            logger.error(f"清单文件缺少manifest对象: {module_id}")
            return None
        return module.manifest

    def load_module(self, module_id: str) -> bool:
        """加载单个模块：清单 -> 模型 -> 路由"""
        if module_id in self.modules:
            logger.warning(f"模块已加载: {module_id}")
            return True

        module_path = self.modules_path / module_id

        manifest = self.load_manifest(module_id)
        if not manifest:
            return False

        if not manifest.enabled:
            logger.debug(f"模块已禁用: {module_id}")
            return False

        # 加载模型（确保数据库表能被创建）
        models_file = module_path / f"{module_id}_models.py"
        if self._import_module(f"modules.{module_id}.{module_id}_models", models_file):
            logger.debug(f"加载模型成功: {module_id}")

        # 加载路由
        router_file = module_path / f"{module_id}_router.py"
        router_module = self._import_module(f"modules.{module_id}.{module_id}_router", router_file)

        if router_module and hasattr(router_module, "router"):
            manifest.router = router_module.router
            prefix = manifest.router_prefix or f"/api/v1/{module_id}"
            self.app.include_router(manifest.router, prefix=prefix, tags=[manifest.name])
            logger.debug(f"注册路由成功: {prefix}")
        elif router_file.exists():
            logger.error(f"加载路由失败 {module_id}: 无法找到 router 对象")
            return False

        self.modules[module_id] = LoadedModule(manifest=manifest, path=module_path)

        event_bus.emit(Events.MODULE_LOADED, "kernel", {"module_id": module_id})
        logger.info(f"模块加载成功: {manifest.name} v{manifest.version}")
        return True

    def load_all(self) -> Dict[str, bool]:
        """加载所有已发现的模块"""
        return {module_id: self.load_module(module_id) for module_id in self.scan_modules()}

    def get_loaded_modules(self) -> List[ModuleManifest]:
        """获取所有已加载模块清单"""
        return [m.manifest for m in self.modules.values()]

    def get_module_info_for_frontend(self) -> List[dict]:
        """
        获取前端所需的模块信息
        包含菜单配置和资源路径
        """
        result = []
        for loaded in self.modules.values():
            manifest = loaded.manifest
            result.append({
                "id": manifest.id,
                "name": manifest.name,
                "version": manifest.version,
                "description": manifest.description,
                "icon": manifest.icon,
                "menu": manifest.menu,
                "permissions": manifest.permissions,
                "assets": {
                    "css": manifest.assets.css,
                    "js": manifest.assets.js
                }
            })
        return result

    def get_all_permissions(self) -> List[dict]:
        """获取所有模块声明的权限"""
        permissions = []
        for module_id, loaded in self.modules.items():
            manifest = loaded.manifest
            for perm in manifest.permissions:
                permissions.append({
                    "module_id": module_id,
                    "module_name": manifest.name,
                    "permission": perm
                })
        return permissions


# 全局加载器实例（在main.py中初始化）
module_loader: Optional[ModuleLoader] = None


def init_loader(app: FastAPI) -> ModuleLoader:
    """初始化模块加载器"""
    global module_loader
    module_loader = ModuleLoader(app)
    return module_loader


def get_module_loader() -> Optional[ModuleLoader]:
    """获取模块加载器实例"""
    return module_loader
