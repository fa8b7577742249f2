"""
打开（目录内省）、按名读写整变量、读属性
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, List, Optional, Tuple

import numpy as np
import xarray as xr

from .config import GLOBAL, MAX_RANK, MIN_RANK, SUPPORTED_TYPES, ElementType
from .catalog import (
    Compression,
    Dataset,
    Dimension,
    Variable,
    find_dimension,
    find_variable,
)
from .engine import NetCDF4Engine, default_engine
from .exceptions import (
    MetaNCError,
    NotFoundError,
    ShapeMismatchError,
    StorageError,
    TypeMismatchError,
)
from .utils import format_shape, log

# ────────────────────────────────────────────────────────────────────────
def open_dataset(path: str | Path, *, engine: NetCDF4Engine | None = None) -> Dataset:
    """只读打开已有文件，内省出维度 / 变量目录。任何引擎错误都使本次打开失败。"""
    engine = engine or default_engine
    path = Path(path)
    handle = engine.open(path)
    try:
        dset = _introspect(engine, handle, path)
    except MetaNCError:
        engine.close(handle)
        raise
    log.info("📂 已打开 %s (%d 维度, %d 变量)",
             path.name, len(dset.dimensions), len(dset.variables))
    return dset

def close_dataset(dset: Dataset):
    dset.close()

def _introspect(engine: NetCDF4Engine, handle: int, path: Path) -> Dataset:
    counts = engine.inquire_counts(handle)
    dset = Dataset(
        handle=handle,
        path=path,
        engine=engine,
        global_attribute_count=counts.natts,
        unlimited_index=counts.unlimited,
        file_format=engine.inquire_format(handle),
    )
    for i in range(counts.ndims):
        info = engine.inquire_dimension(handle, i)
        dset.dimensions.append(
            Dimension(info.name, info.length, unlimited=(i == counts.unlimited), dim_id=i)
        )
    for i in range(counts.nvars):
        info = engine.inquire_variable(handle, i)
        dset.variables.append(Variable(
            name=info.name,
            element_type=info.element_type,
            dimensions=tuple(_dim_by_id(dset.dimensions, d).name for d in info.dim_ids),
            compression=Compression(info.complevel, info.shuffle) if info.complevel > 0 else None,
            attribute_count=info.natts,
            var_id=info.name,
            datatype=info.datatype,
            foreign_filters=info.foreign_filters,
        ))
    return dset

def _dim_by_id(dims: List[Dimension], dim_id: int) -> Dimension:
    for dim in dims:
        if dim.dim_id == dim_id:
            return dim
    raise StorageError(f"变量引用了不存在的维度 id {dim_id}")

# ────────────────────────────────────────────────────────────────────────
def read_vardata(
    dset: Dataset,
    name: str,
    element_type: ElementType | str | np.dtype,
    rank: int,
) -> np.ndarray:
    """
    读取整个变量。调用方声明元素类型与维数，先与目录核对再传输；
    返回数组的轴顺序 = 变量维度声明顺序，unlimited 维取当前实际长度。
    """
    var = find_variable(dset, name)
    _check_request(var, _as_element_type(element_type), rank)
    shape = _live_shape(dset, var)
    return dset.engine.read_array(dset.handle, var.var_id, shape)

def write_vardata(dset: Dataset, name: str, values: np.ndarray):
    """
    整变量写入，各轴都从 0 开始（覆盖写，不做追加）。
    除 unlimited 轴可以大于当前长度（写入即增长）外，各轴长度必须与目录一致。
    """
    var = find_variable(dset, name)
    values = np.asarray(values)
    _check_request(var, _as_element_type(values.dtype), values.ndim)
    shape = _live_shape(dset, var)
    for dname, want, got in zip(var.dimensions, shape, values.shape):
        dim = find_dimension(dset, dname)
        if got == want or (dim.unlimited and got > want):
            continue
        raise ShapeMismatchError(
            f"变量 {name} 期望形状 {format_shape(shape)}，收到 {format_shape(values.shape)}"
        )
    dset.engine.write_array(dset.handle, var.var_id, np.ascontiguousarray(values))
    for dname, got in zip(var.dimensions, values.shape):
        dim = find_dimension(dset, dname)
        if dim.unlimited and got > dim.length:
            log.debug("unlimited 维 %s: %d → %d", dim.name, dim.length, got)
            dim.length = got

def _as_element_type(value) -> ElementType:
    if isinstance(value, ElementType):
        return value
    try:
        return ElementType.from_dtype(value)
    except (TypeError, ValueError) as exc:
        raise TypeMismatchError(f"无法识别的元素类型 {value!r}") from exc

def _check_request(var: Variable, element_type: ElementType, rank: int):
    if element_type is not var.element_type:
        raise TypeMismatchError(
            f"变量 {var.name} 类型为 {var.element_type.name.lower()}，"
            f"请求的是 {element_type.name.lower()}"
        )
    if element_type not in SUPPORTED_TYPES:
        raise TypeMismatchError(f"不支持 {element_type.name.lower()} 类型的读写")
    if rank != var.rank:
        raise ShapeMismatchError(f"变量 {var.name} 为 {var.rank} 维，请求的是 {rank} 维")
    if not MIN_RANK <= rank <= MAX_RANK:
        raise ShapeMismatchError(f"只支持 {MIN_RANK}–{MAX_RANK} 维变量的读写，{var.name} 为 {rank} 维")

def _live_shape(dset: Dataset, var: Variable) -> Tuple[int, ...]:
    """unlimited 维可能已增长，读写前重新向引擎查询并回写目录"""
    shape = []
    for dname in var.dimensions:
        dim = find_dimension(dset, dname)
        if dim.unlimited:
            dim.length = dset.engine.inquire_dimension(dset.handle, dim.dim_id).length
        shape.append(dim.length)
    return tuple(shape)

# ────────────────────────────────────────────────────────────────────────
def attribute_names(dset: Dataset, varname: Optional[str] = None) -> List[str]:
    """全局（varname=None）或变量属性名，按存储顺序"""
    if varname is None:
        target, count = GLOBAL, dset.global_attribute_count
    else:
        var = find_variable(dset, varname)
        target, count = var.var_id, var.attribute_count
    return [dset.engine.inquire_attribute_name(dset.handle, target, i) for i in range(count)]

def read_attribute(dset: Dataset, attname: str, varname: Optional[str] = None) -> Any:
    """
    读取属性原值（标量 / 1 维数组 / 字符串）。
    varname=None ⇒ 全局属性。
    """
    if attname not in attribute_names(dset, varname):
        where = "全局" if varname is None else f"变量 {varname}"
        raise NotFoundError(f"{where} 没有属性 {attname!r}")
    target = GLOBAL if varname is None else find_variable(dset, varname).var_id
    return dset.engine.read_attribute(dset.handle, target, attname)

def to_dataarray(dset: Dataset, name: str) -> xr.DataArray:
    """整变量读成带维度名与属性的 DataArray（不做任何数值处理）"""
    var = find_variable(dset, name)
    values = read_vardata(dset, name, var.element_type, var.rank)
    attrs = {
        att: dset.engine.read_attribute(dset.handle, var.var_id, att)
        for att in attribute_names(dset, name)
    }
    return xr.DataArray(values, dims=var.dimensions, name=name, attrs=attrs)
