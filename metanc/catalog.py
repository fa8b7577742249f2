"""
catalog.py
文件结构的内存目录：Dimension / Variable / Dataset，以及按名查找
"""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .config import ElementType, FileFormat
from .engine import NetCDF4Engine
from .exceptions import NotFoundError
from .utils import log

# ──────────────── 目录模型 ────────────────────────────────────
@dataclass
class Dimension:
    name: str
    length: int
    unlimited: bool = False
    dim_id: Optional[int] = None      # 引擎内部 id，跨文件不稳定

@dataclass(frozen=True)
class Compression:
    level: int
    shuffle: bool = False

@dataclass
class Variable:
    name: str
    element_type: ElementType
    dimensions: Tuple[str, ...]       # 声明顺序 = 数组轴顺序（外→内）
    compression: Optional[Compression] = None
    attribute_count: int = 0
    var_id: Optional[str] = None
    datatype: Any = None                      # 仅 OTHER：引擎原始类型
    foreign_filters: Tuple[str, ...] = ()     # zlib 以外的压缩过滤器（克隆时不保留）

    @property
    def rank(self) -> int:
        return len(self.dimensions)

@dataclass
class Dataset:
    handle: int
    path: Path
    engine: NetCDF4Engine
    dimensions: List[Dimension] = field(default_factory=list)
    variables: List[Variable] = field(default_factory=list)
    global_attribute_count: int = 0
    unlimited_index: Optional[int] = None
    file_format: Optional[FileFormat] = None
    skipped: List[str] = field(default_factory=list)
    closed: bool = False

    @property
    def unlimited_dimension(self) -> Optional[Dimension]:
        if self.unlimited_index is None:
            return None
        return self.dimensions[self.unlimited_index]

    def find_variable(self, name: str) -> Variable:
        return find_variable(self, name)

    def find_dimension(self, name: str) -> Dimension:
        return find_dimension(self, name)

    def shape(self, name: str) -> Tuple[int, ...]:
        """按目录记录的维度长度给出变量形状（不重新查询引擎）"""
        var = find_variable(self, name)
        return tuple(find_dimension(self, d).length for d in var.dimensions)

    def close(self):
        """释放引擎句柄并丢弃内存目录；只能调用一次"""
        self.engine.close(self.handle)
        self.closed = True
        self.dimensions.clear()
        self.variables.clear()
        log.info("📕 已关闭 %s", self.path)

    def __enter__(self) -> "Dataset":
        return self

    def __exit__(self, *exc):
        if not self.closed:
            self.close()


# ──────────────── 按名查找 ────────────────────────────────────
def find_variable(dset: Dataset, name: str) -> Variable:
    for var in dset.variables:
        if var.name == name:
            return var
    raise NotFoundError(f"{dset.path} 中没有名为 {name!r} 的变量")

def find_dimension(dset: Dataset, name: str) -> Dimension:
    for dim in dset.dimensions:
        if dim.name == name:
            return dim
    raise NotFoundError(f"{dset.path} 中没有名为 {name!r} 的维度")

def get_vardim(dset: Dataset, name: str) -> int:
    """变量的维数"""
    return find_variable(dset, name).rank

def get_dimlen(dset: Dataset, name: str) -> int:
    return find_dimension(dset, name).length


# ──────────────── 目录摘要 ────────────────────────────────────
def show_dataset_info(dset: Dataset) -> Dict:
    """类似 ncdump -h 的结构摘要，可直接 json.dumps"""
    return {
        "path":        str(dset.path),
        "format":      dset.file_format.value if dset.file_format else None,
        "global_atts": dset.global_attribute_count,
        "dimensions": {
            d.name: (None if d.unlimited else d.length) for d in dset.dimensions
        },
        "unlimited":   dset.unlimited_dimension.name if dset.unlimited_dimension else None,
        "variables": {
            v.name: {
                "type":        v.element_type.name.lower(),
                "dims":        list(v.dimensions),
                "natts":       v.attribute_count,
                "compression": (
                    {"level": v.compression.level, "shuffle": v.compression.shuffle}
                    if v.compression else None
                ),
            }
            for v in dset.variables
        },
    }

def variables_frame(dset: Dataset) -> pd.DataFrame:
    rows = []
    for v in dset.variables:
        rows.append({
            "name":     v.name,
            "type":     v.element_type.name.lower(),
            "rank":     v.rank,
            "dims":     ",".join(v.dimensions),
            "shape":    dset.shape(v.name),
            "natts":    v.attribute_count,
            "complevel": v.compression.level if v.compression else 0,
            "shuffle":  v.compression.shuffle if v.compression else False,
        })
    return pd.DataFrame(rows, columns=[
        "name", "type", "rank", "dims", "shape", "natts", "complevel", "shuffle",
    ])
