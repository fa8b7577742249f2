class MetaNCError(Exception):
    """基类"""

class StorageError(MetaNCError):
    """存储引擎 (netCDF4) 调用失败"""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(f"[{code}] {message}" if code is not None else message)
        self.code = code
        self.message = message

class CreateError(StorageError):
    """目标文件无法创建"""

class AttributeCopyError(StorageError):
    """克隆时属性复制失败"""

class NotFoundError(MetaNCError, KeyError):
    """按名查找变量 / 维度 / 属性未命中"""

    def __str__(self):
        return str(self.args[0]) if self.args else ""

class ShapeMismatchError(MetaNCError, ValueError):
    """数组秩或各轴长度与目录不一致"""

class TypeMismatchError(MetaNCError, TypeError):
    """元素类型与目录不一致"""
