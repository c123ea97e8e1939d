"""
相册媒体模块业务逻辑
目录分类管理、目录镜像与媒体排序持久化
"""

import os
import shutil
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.events import event_bus, Event, Events
from utils.text import sanitize_dir_name, dedupe_filename

from .media_album_models import DirectoryTerm, FieldConfig, AlbumNode, MediaItem
from .media_album_schemas import MediaOrderItem
from . import media_album_tree as tree_utils

logger = logging.getLogger(__name__)

NODE_PREFIX = "node:"
MEDIA_PREFIX = "media:"


async def get_field_configs(db: AsyncSession, entity_type: str, bundle: str) -> List[FieldConfig]:
    """获取实体类型上定义的全部字段配置"""
    result = await db.execute(
        select(FieldConfig)
        .where(FieldConfig.entity_type == entity_type, FieldConfig.bundle == bundle)
        .order_by(FieldConfig.id)
    )
    return list(result.scalars().all())


async def find_media_reference_field(db: AsyncSession, bundle: str) -> Optional[str]:
    """查找相册类型上第一个引用媒体的字段"""
    for config in await get_field_configs(db, "node", bundle):
        if config.field_type == "entity_reference" and config.get_setting("target_type") == "media":
            return config.field_name
    return None


class DirectoryService:
    """
    目录分类服务
    目录以 DirectoryTerm 存储，parent_id 指向父目录（0 为根）
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    # ============ 查询 ============

    async def get_term(self, term_id: int) -> Optional[DirectoryTerm]:
        """获取目录"""
        if not term_id:
            return None
        return await self.db.get(DirectoryTerm, term_id)

    async def load_vocabulary_terms(self, vocabulary_id: str) -> List[DirectoryTerm]:
        """获取词汇表下所有目录"""
        result = await self.db.execute(
            select(DirectoryTerm)
            .where(DirectoryTerm.vid == vocabulary_id)
            .order_by(DirectoryTerm.weight, DirectoryTerm.name, DirectoryTerm.id)
        )
        return list(result.scalars().all())

    async def _terms_by_id(self, vocabulary_id: str) -> Dict[int, DirectoryTerm]:
        return {t.id: t for t in await self.load_vocabulary_terms(vocabulary_id)}

    async def _children(self, term_id: int) -> List[DirectoryTerm]:
        result = await self.db.execute(
            select(DirectoryTerm).where(DirectoryTerm.parent_id == term_id)
        )
        return list(result.scalars().all())

    # ============ 增删改 ============

    async def create_directory_term(self, vocabulary_id: str, name: str, parent_id: int = 0) -> DirectoryTerm:
        """
        创建目录

        新目录排在同级目录之后（权重 = 同级数量）

        Raises:
            ValueError: 名称为空或父目录不存在
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("目录名称不能为空")

        parent_id = int(parent_id or 0)
        if parent_id:
            parent = await self.get_term(parent_id)
            if parent is None or parent.vid != vocabulary_id:
                raise ValueError(f"父目录不存在: {parent_id}")

        siblings = await self.db.execute(
            select(DirectoryTerm.id).where(
                DirectoryTerm.vid == vocabulary_id,
                DirectoryTerm.parent_id == parent_id
            )
        )
        term = DirectoryTerm(
            vid=vocabulary_id,
            name=name,
            parent_id=parent_id,
            weight=len(siblings.all())
        )
        self.db.add(term)
        await self.db.flush()
        await self.db.refresh(term)
        logger.info(f"创建目录: id={term.id}, name={term.name}, parent_id={parent_id}")
        return term

    async def delete_directory_term(self, term_id: int) -> List[int]:
        """
        删除目录及其全部子目录

        Returns:
            被删除的目录ID（目录不存在时为空列表）
        """
        term = await self.get_term(term_id)
        if term is None:
            logger.warning(f"删除目录跳过，目录不存在: {term_id}")
            return []

        deleted = []
        pending = [term.id]
        while pending:
            current = pending.pop()
            deleted.append(current)
            pending.extend(child.id for child in await self._children(current))

        vid, parent_id = term.vid, term.parent_id
        await self.db.execute(delete(DirectoryTerm).where(DirectoryTerm.id.in_(deleted)))
        await self.renumber_siblings(vid, parent_id)
        logger.info(f"删除目录: id={term_id}, 共 {len(deleted)} 个")
        return deleted

    async def renumber_siblings(self, vocabulary_id: str, parent_id: int) -> Dict[int, int]:
        """按当前顺序把同级目录权重重排为连续的 0..n-1"""
        result = await self.db.execute(
            select(DirectoryTerm)
            .where(DirectoryTerm.vid == vocabulary_id, DirectoryTerm.parent_id == parent_id)
            .order_by(DirectoryTerm.weight, DirectoryTerm.name, DirectoryTerm.id)
        )
        siblings = list(result.scalars().all())
        weights = tree_utils.recalculate_weights(term.id for term in siblings)
        for term in siblings:
            term.weight = weights[term.id]
        await self.db.flush()
        return weights

    async def move_directory_term(self, term_id: int, parent_id: int) -> Optional[DirectoryTerm]:
        """
        移动目录到新的父目录

        Raises:
            ValueError: 移动到自身、自身子树或不存在的父目录
        """
        term = await self.get_term(term_id)
        if term is None:
            logger.warning(f"移动目录跳过，目录不存在: {term_id}")
            return None

        parent_id = int(parent_id or 0)
        if parent_id == term.id:
            raise ValueError("不能将目录移动到自身下")

        if parent_id:
            terms_by_id = await self._terms_by_id(term.vid)
            if parent_id not in terms_by_id:
                raise ValueError(f"父目录不存在: {parent_id}")
            if term.id in tree_utils.get_term_ancestors(parent_id, terms_by_id):
                raise ValueError("不能将目录移动到其子目录下")

        term.parent_id = parent_id
        await self.db.flush()
        logger.info(f"移动目录: id={term_id}, parent_id={parent_id}")
        return term

    async def update_term_weights(self, weights: Dict[Any, Any]) -> List[int]:
        """
        批量更新目录权重

        每个目录独立更新，不存在的目录跳过
        """
        updated = []
        for raw_id, weight in (weights or {}).items():
            term = await self.get_term(int(raw_id))
            if term is None:
                logger.warning(f"更新权重跳过，目录不存在: {raw_id}")
                continue
            term.weight = int(weight)
            updated.append(term.id)
        await self.db.flush()
        return updated

    async def update_directory_term(
        self,
        term_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Optional[DirectoryTerm]:
        """更新目录名称/描述"""
        term = await self.get_term(term_id)
        if term is None:
            return None

        if name is not None:
            term.name = name
        if description is not None:
            term.description = description

        await self.db.flush()
        await self.db.refresh(term)
        return term

    async def get_or_create_term(self, vocabulary_id: str, name: str, parent_tid: int = 0) -> int:
        """按 (词汇表, 名称, 父目录) 获取目录，不存在则创建"""
        result = await self.db.execute(
            select(DirectoryTerm.id).where(
                DirectoryTerm.vid == vocabulary_id,
                DirectoryTerm.name == name,
                DirectoryTerm.parent_id == int(parent_tid or 0)
            ).order_by(DirectoryTerm.id)
        )
        existing = result.scalars().first()
        if existing is not None:
            return existing

        term = await self.create_directory_term(vocabulary_id, name, parent_tid)
        return term.id

    async def cleanup_empty_terms(self, vocabulary_id: str, field_name: Optional[str] = None) -> List[int]:
        """
        删除没有任何媒体引用的目录

        仍有被引用子目录的祖先目录会保留
        """
        field_name = field_name or self.settings.media_directory_field
        terms_by_id = await self._terms_by_id(vocabulary_id)

        result = await self.db.execute(select(MediaItem))
        used = set()
        for media in result.scalars().all():
            used.update(media.target_ids(field_name))

        keep = set()
        for tid in used:
            if tid in terms_by_id:
                keep.add(tid)
                keep.update(tree_utils.get_term_ancestors(tid, terms_by_id))

        removable = [tid for tid in terms_by_id if tid not in keep]
        if removable:
            await self.db.execute(delete(DirectoryTerm).where(DirectoryTerm.id.in_(removable)))
            await self.db.flush()
            logger.info(f"清理空目录: {removable}")
        return removable

    # ============ 树与路径 ============

    async def get_directory_tree_data(self, vocabulary_id: str, selected_tid: Optional[int] = None) -> List[dict]:
        """目录树（jstree 节点）"""
        terms = await self.load_vocabulary_terms(vocabulary_id)
        return tree_utils.build_tree(terms, selected_id=selected_tid)

    async def build_term_path(self, term_id: Optional[int], sep: str = "/") -> str:
        """目录的名称路径，如 "旅行/2024/海边" """
        term = await self.get_term(term_id) if term_id else None
        if term is None:
            return ""
        return tree_utils.build_term_path(term.id, await self._terms_by_id(term.vid), sep)

    async def build_directory_path_from_term(self, term_id: Optional[int]) -> str:
        """
        目录对应的文件系统相对路径

        每级名称经过 sanitize_dir_name 处理；0/None/未知目录返回空字符串
        """
        term = await self.get_term(term_id) if term_id else None
        if term is None:
            return ""
        terms_by_id = await self._terms_by_id(term.vid)
        chain = tree_utils.get_ancestor_chain(term.id, terms_by_id)[1:]
        return "/".join(sanitize_dir_name(terms_by_id[tid].name) for tid in chain if tid in terms_by_id)

    async def get_directory_tree_from_term(self, term_id: int) -> dict:
        """以指定目录为根的子树 {tid, name, path, children}"""
        term = await self.get_term(term_id)
        if term is None:
            return {}
        terms_by_id = await self._terms_by_id(term.vid)
        return self._subtree(term, list(terms_by_id.values()), terms_by_id)

    def _subtree(self, term: DirectoryTerm, terms: List[DirectoryTerm], terms_by_id: Dict[int, DirectoryTerm]) -> dict:
        return {
            "tid": term.id,
            "name": term.name,
            "path": tree_utils.build_term_path(term.id, terms_by_id),
            "children": [
                self._subtree(child, terms, terms_by_id)
                for child in tree_utils._children_of(terms, term.id)
            ],
        }

    async def get_directory_tree_from_leaf(self, term_id: int) -> dict:
        """根 -> 叶子 的线性路径树"""
        term = await self.get_term(term_id)
        if term is None:
            return {}
        return tree_utils.build_path_from_leaf(term.id, await self._terms_by_id(term.vid))

    # ============ 相册使用情况 ============

    async def get_used_directories_in_album(self, album: AlbumNode) -> List[int]:
        """
        相册内媒体所在的目录ID

        无目录的媒体记为 0（根目录），结果去重并保持首次出现顺序
        """
        if album is None:
            return []

        media_ids: List[int] = []
        for config in await get_field_configs(self.db, "node", album.bundle):
            if config.field_type == "entity_reference" and config.get_setting("target_type") == "media":
                media_ids.extend(album.target_ids(config.field_name))

        if not media_ids:
            return []

        result = await self.db.execute(select(MediaItem).where(MediaItem.id.in_(media_ids)))
        media_by_id = {m.id: m for m in result.scalars().all()}

        directories: List[int] = []
        field_name = self.settings.media_directory_field
        for media_id in media_ids:
            media = media_by_id.get(media_id)
            if media is None:
                continue
            tid = media.first_target_id(field_name) or 0
            if tid not in directories:
                directories.append(tid)
        return directories

    async def build_directory_selector(self, album: AlbumNode, vocabulary_id: Optional[str] = None) -> dict:
        """“移动到目录”选择器：完整目录树 + 使用中目录选项"""
        vocabulary_id = vocabulary_id or self.settings.directory_vocabulary
        terms = await self.load_vocabulary_terms(vocabulary_id)
        used = await self.get_used_directories_in_album(album)
        logger.debug(f"相册 {album.id} 使用中的目录: {used}")
        return {
            "tree": tree_utils.build_tree(terms),
            "options": tree_utils.build_used_directory_options(terms, used),
        }

    # ============ 文件系统镜像 ============

    def ensure_directories_exist(self, directory_tree: dict, base_directory: str):
        """
        在磁盘上镜像目录树 {name, children}

        Raises:
            RuntimeError: 目录创建失败
        """
        try:
            os.makedirs(base_directory, exist_ok=True)
        except OSError as e:
            logger.error(f"创建根目录失败 {base_directory}: {e}")
            raise RuntimeError(f"无法创建根目录: {base_directory}") from e

        for child in directory_tree.get("children", []):
            self._create_directory_recursive(child, base_directory)

    def _create_directory_recursive(self, node: dict, parent_directory: str):
        current = os.path.join(parent_directory, sanitize_dir_name(node.get("name", "")))
        try:
            os.makedirs(current, exist_ok=True)
        except OSError as e:
            logger.error(f"创建目录失败 {current} (目录 {node.get('tid')}): {e}")
            raise RuntimeError(f"无法创建目录: {current}") from e

        for child in node.get("children", []):
            self._create_directory_recursive(child, current)

    async def ensure_term_directory_exists(self, term_id: Optional[int]) -> bool:
        """确保目录对应的磁盘路径存在（根目录始终视为存在）"""
        if not term_id or term_id <= 0:
            return True

        term = await self.get_term(term_id)
        if term is None:
            return False

        full_path = os.path.join(self.settings.upload_dir, await self.build_directory_path_from_term(term_id))
        try:
            os.makedirs(full_path, exist_ok=True)
        except OSError as e:
            logger.error(f"创建目录路径失败 {full_path}: {e}")
            return False
        return True

    async def move_media_files_to_directory(self, media: MediaItem, term_id: Optional[int] = None) -> bool:
        """
        将媒体文件移动到目录对应的磁盘路径下

        已在目标位置的文件跳过；目标存在同名文件时自动重命名

        Returns:
            是否移动了文件
        """
        if media is None or not media.file_path:
            logger.info(f"媒体没有文件，跳过移动: {getattr(media, 'id', None)}")
            return False

        if term_id and not await self.ensure_term_directory_exists(term_id):
            logger.warning(f"目标目录不可用: {term_id}")
            return False

        relative_dir = await self.build_directory_path_from_term(term_id)
        filename = os.path.basename(media.file_path)
        new_relative = os.path.join(relative_dir, filename) if relative_dir else filename
        if os.path.normpath(new_relative) == os.path.normpath(media.file_path):
            logger.debug(f"文件已在目标位置: {media.file_path}")
            return False

        base_dir = self.settings.upload_dir
        old_full = os.path.join(base_dir, media.file_path)
        target_dir = os.path.join(base_dir, relative_dir)
        if not os.path.exists(old_full):
            logger.warning(f"媒体文件不存在 {old_full} (媒体 {media.id})")
            return False

        try:
            os.makedirs(target_dir, exist_ok=True)
            filename = dedupe_filename(target_dir, filename)
            shutil.move(old_full, os.path.join(target_dir, filename))
        except OSError as e:
            logger.warning(f"移动文件失败 {old_full} -> {target_dir}: {e}")
            return False

        media.file_path = os.path.join(relative_dir, filename) if relative_dir else filename
        await self.db.flush()
        logger.info(f"移动媒体文件: 媒体 {media.id} -> {media.file_path}")
        return True


class MediaOrderService:
    """
    媒体排序服务

    - 带 nid 的排序项按相册分组，重建相册媒体引用字段
    - media: 前缀且分类发生变化的排序项更新媒体上的分类字段
    每个相册/媒体单独提交，单个失败只记录日志并跳过
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save_media_order(self, data: Dict[str, Any]) -> dict:
        """保存媒体排序（先发布事件，再持久化）"""
        items = data.get("media_order") or []
        logger.info(
            f"收到媒体排序请求: view={data.get('view_id') or 'unknown'}, "
            f"display={data.get('display_id') or 'unknown'}, items={len(items)}"
        )

        await event_bus.publish(Event(name=Events.MEDIA_ORDER_SAVE, source="media_album", data=data))

        order_items = [
            item if isinstance(item, MediaOrderItem) else MediaOrderItem.model_validate(item)
            for item in items
        ]
        result = await self.order_media_items(order_items)
        result["data_received"] = len(order_items)
        return result

    async def order_media_items(self, items: List[MediaOrderItem]) -> dict:
        """按权重重排相册媒体，并同步媒体分类字段"""
        if not items:
            return {
                "success": False,
                "message": "没有需要处理的媒体",
                "media_received": 0,
            }

        node_updates: Dict[int, List[MediaOrderItem]] = {}
        node_fields: Dict[int, Optional[str]] = {}
        media_updates: Dict[int, Dict[str, int]] = {}

        for item in items:
            if item.nid:
                node_updates.setdefault(item.nid, []).append(item)
                if item.field_name and item.field_name.startswith(NODE_PREFIX):
                    node_fields.setdefault(item.nid, item.field_name[len(NODE_PREFIX):])

            if (
                item.field_name
                and item.field_name.startswith(MEDIA_PREFIX)
                and item.orig_termid is not None
                and int(item.termid or 0) != int(item.orig_termid)
            ):
                field = item.field_name[len(MEDIA_PREFIX):]
                media_updates.setdefault(item.media_id, {})[field] = int(item.termid or 0)

        errors: List[dict] = []
        processed_containers = 0
        unchanged_containers = 0

        for nid, group in node_updates.items():
            try:
                changed = await self._reorder_container(nid, group, node_fields.get(nid))
            except Exception as e:
                await self.db.rollback()
                logger.error(f"相册 {nid} 媒体重排失败: {e}")
                errors.append({"nid": nid, "message": str(e)})
                continue

            if changed is None:
                errors.append({"nid": nid, "message": "相册不存在或缺少媒体字段"})
            elif changed:
                processed_containers += 1
            else:
                unchanged_containers += 1

        processed_media = 0
        for media_id, fields in media_updates.items():
            try:
                changed = await self._update_media_terms(media_id, fields)
            except Exception as e:
                await self.db.rollback()
                logger.error(f"媒体 {media_id} 分类更新失败: {e}")
                errors.append({"media_id": media_id, "message": str(e)})
                continue

            if changed is None:
                errors.append({"media_id": media_id, "message": "媒体不存在"})
            elif changed:
                processed_media += 1

        if errors:
            message = f"媒体排序已保存，{len(errors)} 项失败"
        else:
            message = "媒体排序与分类字段已更新"

        return {
            "success": True,
            "message": message,
            "media_received": len(items),
            "processed_containers": processed_containers,
            "unchanged_containers": unchanged_containers,
            "processed_media": processed_media,
            "errors": errors,
        }

    async def _reorder_container(
        self,
        nid: int,
        group: List[MediaOrderItem],
        field_name: Optional[str] = None
    ) -> Optional[bool]:
        """
        重建单个相册的媒体引用字段

        Returns:
            True 已写入；False 顺序未变化；None 相册或字段不存在
        """
        node = await self.db.get(AlbumNode, nid)
        if node is None:
            logger.warning(f"相册不存在: {nid}")
            return None

        media_field = field_name or await find_media_reference_field(self.db, node.bundle)
        if not media_field:
            logger.warning(f"相册 {nid} 没有媒体引用字段")
            return None

        ordered_ids = []
        for item in sorted(group, key=lambda i: i.weight):
            if item.media_id not in ordered_ids:
                ordered_ids.append(item.media_id)

        if node.target_ids(media_field) == ordered_ids:
            logger.debug(f"相册 {nid} 媒体顺序未变化，跳过写入")
            return False

        await self._write_container(node, media_field, ordered_ids)
        logger.info(f"已更新相册 {nid} 的媒体顺序: {ordered_ids}")
        return True

    async def _write_container(self, node: AlbumNode, field_name: str, media_ids: List[int]):
        """整体写入相册媒体字段并提交"""
        node.set_values(field_name, [{"target_id": mid} for mid in media_ids])
        await self.db.commit()

    async def _update_media_terms(self, media_id: int, fields: Dict[str, int]) -> Optional[bool]:
        """
        更新媒体上的分类字段（值相同则不写入）

        Returns:
            True 已写入；False 无变化；None 媒体不存在
        """
        media = await self.db.get(MediaItem, media_id)
        if media is None:
            logger.warning(f"媒体不存在: {media_id}")
            return None

        changed = False
        for field_name, termid in fields.items():
            if media.first_target_id(field_name) == termid:
                continue
            media.set_values(field_name, [{"target_id": termid}] if termid else [])
            changed = True

        if changed:
            await self.db.commit()
            logger.info(f"已更新媒体 {media_id} 的分类字段: {fields}")
        return changed

    async def save_flexgrid_order(self, order: Iterable[int]) -> dict:
        """按位置保存媒体顺序（权重 = 下标）"""
        updated = []
        skipped = []
        for index, media_id in enumerate(order):
            media = await self.db.get(MediaItem, int(media_id))
            if media is None:
                logger.warning(f"网格排序跳过，媒体不存在: {media_id}")
                skipped.append(media_id)
                continue
            media.weight = index
            updated.append(media.id)

        await self.db.commit()
        logger.info(f"网格排序已保存: {len(updated)} 项")
        return {"success": True, "updated": updated, "skipped": skipped}
