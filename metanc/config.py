from enum import Enum

import numpy as np

# ─── 元素类型枚举（值即 numpy dtype 代码）────────────────────────────────────────
class ElementType(str, Enum):
    FLOAT32 = "f4"
    FLOAT64 = "f8"
    INT32   = "i4"
    INT16   = "i2"
    INT8    = "i1"
    UINT8   = "u1"
    UINT16  = "u2"
    UINT32  = "u4"
    INT64   = "i8"
    UINT64  = "u8"
    CHAR    = "S1"
    OTHER   = "other"     # 字符串 / vlen / compound / enum 等用户自定义类型

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value)

    @classmethod
    def from_dtype(cls, dtype) -> "ElementType":
        """np.dtype / 类型码 → ElementType；不认识的类型抛 ValueError"""
        dt = np.dtype(dtype)
        return cls(f"{dt.kind}{dt.itemsize}")

class FileFormat(str, Enum):
    NETCDF4_CLASSIC      = "NETCDF4_CLASSIC"
    NETCDF4              = "NETCDF4"
    NETCDF3_64BIT_OFFSET = "NETCDF3_64BIT_OFFSET"
    NETCDF3_CLASSIC      = "NETCDF3_CLASSIC"
    NETCDF3_64BIT_DATA   = "NETCDF3_64BIT_DATA"

# ─── 读写分发支持的组合 ─────────────────────────────────────────────────────────
SUPPORTED_TYPES = frozenset({
    ElementType.FLOAT32,
    ElementType.FLOAT64,
    ElementType.INT32,
    ElementType.INT16,
})
MIN_RANK = 1
MAX_RANK = 4

# ─── 源文件格式未知时新建文件的默认格式：HDF5 底层 + classic 数据模型 ───────────────
DEFAULT_FORMAT = FileFormat.NETCDF4_CLASSIC

# 属性目标：None 表示全局属性表
GLOBAL = None
FILL_VALUE_ATTR = "_FillValue"

# netCDF4 filters() 中除 zlib 外的压缩过滤器，克隆时不保留
FOREIGN_FILTERS = ("zstd", "bzip2", "szip", "blosc")
