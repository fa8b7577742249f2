import logging
from pathlib import Path

from .exceptions import CreateError

log = logging.getLogger("metanc")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)

def ensure_new_file(path: Path, clobber: bool = True):
    """目标文件所在目录必须存在；clobber=False 时目标文件不得已存在"""
    if not path.parent.is_dir():
        raise CreateError(f"目标目录 {path.parent} 不存在")
    if path.exists() and not clobber:
        raise CreateError(f"目标文件 {path} 已存在（clobber=False）")

def format_shape(shape) -> str:
    return "(" + ", ".join(str(n) for n in shape) + ")"
