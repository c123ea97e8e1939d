"""
文本处理工具
"""

import os
import re


def sanitize_dir_name(name: str, replacement: str = "_") -> str:
    """
    生成文件系统安全的目录名

    仅保留 [A-Za-z0-9_-]，其余字符替换为下划线
    例: "Été 2024" -> "_t__2024"
    """
    if not name:
        return replacement
    return re.sub(r"[^a-zA-Z0-9_\-]", replacement, name)


def dedupe_filename(directory: str, filename: str) -> str:
    """
    目标目录存在同名文件时，追加序号避免覆盖

    Returns:
        可用的文件名（不含目录）
    """
    if not os.path.exists(os.path.join(directory, filename)):
        return filename

    stem, ext = os.path.splitext(filename)
    index = 0
    while True:
        candidate = f"{stem}_{index}{ext}"
        if not os.path.exists(os.path.join(directory, candidate)):
            return candidate
        index += 1
