"""
creator.py
以已打开的 Dataset 为模板新建文件：复制全局属性、维度、变量定义、
变量属性与压缩设置，可选地逐变量复制数据。
"""
from __future__ import annotations
import time
from pathlib import Path
from typing import Any, List, Optional

from .config import (
    DEFAULT_FORMAT,
    FILL_VALUE_ATTR,
    GLOBAL,
    MAX_RANK,
    MIN_RANK,
    SUPPORTED_TYPES,
    FileFormat,
)
from .catalog import Dataset, Dimension, Variable, find_dimension
from .accessor import read_vardata, write_vardata
from .engine import NetCDF4Engine
from .exceptions import AttributeCopyError, CreateError, MetaNCError, StorageError
from .utils import ensure_new_file, log

# ──────────────── 内部小工具 ──────────────────────────────────
def _attribute_names(engine: NetCDF4Engine, handle: int, target: Optional[str], count: int) -> List[str]:
    try:
        return [engine.inquire_attribute_name(handle, target, i) for i in range(count)]
    except StorageError as exc:
        raise AttributeCopyError(f"读取属性名失败: {exc.message}", code=exc.code) from exc

def _copy_attributes(
    engine: NetCDF4Engine,
    src_handle: int,
    src_target: Optional[str],
    names: List[str],
    dst_handle: int,
    dst_target: Optional[str],
):
    for name in names:
        try:
            engine.copy_attribute(src_handle, src_target, name, dst_handle, dst_target)
        except StorageError as exc:
            where = "全局" if src_target is GLOBAL else f"变量 {src_target}"
            raise AttributeCopyError(
                f"复制{where}属性 {name} 失败: {exc.message}", code=exc.code
            ) from exc

def _fill_value(engine: NetCDF4Engine, handle: int, var: Variable, names: List[str]) -> Any:
    if FILL_VALUE_ATTR not in names:
        return None
    try:
        return engine.read_attribute(handle, var.var_id, FILL_VALUE_ATTR)
    except StorageError as exc:
        raise AttributeCopyError(
            f"读取变量 {var.name} 的 {FILL_VALUE_ATTR} 失败: {exc.message}", code=exc.code
        ) from exc

def _define_structure(dsetin: Dataset, dset: Dataset):
    engine = dset.engine

    # 1) 全局属性
    names = _attribute_names(engine, dsetin.handle, GLOBAL, dsetin.global_attribute_count)
    _copy_attributes(engine, dsetin.handle, GLOBAL, names, dset.handle, GLOBAL)
    dset.global_attribute_count = len(names)

    # 2) 维度：unlimited 维在新文件中从 0 长度开始
    for dim in dsetin.dimensions:
        length = None if dim.unlimited else dim.length
        dim_id = engine.define_dimension(dset.handle, dim.name, length)
        if dim.unlimited:
            dset.unlimited_index = len(dset.dimensions)
        dset.dimensions.append(
            Dimension(dim.name, length or 0, unlimited=dim.unlimited, dim_id=dim_id)
        )

    # 3) 变量：维度按名字（而不是源文件的 id）映射到新文件
    for var in dsetin.variables:
        dim_ids = [find_dimension(dset, d).dim_id for d in var.dimensions]
        att_names = _attribute_names(engine, dsetin.handle, var.var_id, var.attribute_count)
        var_id = engine.define_variable(
            dset.handle,
            var.name,
            var.element_type,
            dim_ids,
            complevel=var.compression.level if var.compression else 0,
            shuffle=var.compression.shuffle if var.compression else False,
            fill_value=_fill_value(engine, dsetin.handle, var, att_names),
            datatype=var.datatype,
        )
        if var.foreign_filters:
            log.warning("变量 %s 使用 %s 压缩，新文件中不保留该压缩设置",
                        var.name, "/".join(var.foreign_filters))
        dset.variables.append(Variable(
            name=var.name,
            element_type=var.element_type,
            dimensions=tuple(var.dimensions),
            compression=var.compression,
            attribute_count=var.attribute_count,
            var_id=var_id,
            datatype=var.datatype,
        ))
        # _FillValue 已在定义变量时写入
        _copy_attributes(
            engine, dsetin.handle, var.var_id,
            [n for n in att_names if n != FILL_VALUE_ATTR],
            dset.handle, var_id,
        )

def _copy_vardata(dsetin: Dataset, dset: Dataset):
    """支持 float32/float64/int32/int16 且 1–4 维的变量，其余跳过并告警"""
    for var in dsetin.variables:
        if var.element_type not in SUPPORTED_TYPES or not MIN_RANK <= var.rank <= MAX_RANK:
            log.warning("跳过变量 %s（不支持的数据类型或维数: %s, %d 维）",
                        var.name, var.element_type.name.lower(), var.rank)
            dset.skipped.append(var.name)
            continue
        values = read_vardata(dsetin, var.name, var.element_type, var.rank)
        write_vardata(dset, var.name, values)

# ────────────────────────── 主入口 ───────────────────────────
def create_dataset(
    dsetin: Dataset,
    path: str | Path,
    *,
    copy_vardata: bool = False,
    clobber: bool = True,
    file_format: FileFormat | None = None,
) -> Dataset:
    """
    • 结构（维度 / 变量 / 属性 / 压缩）与 dsetin 一致，unlimited 维重置为 0 长度
    • copy_vardata=True ⇒ 同时复制数据；不支持的变量跳过，名字记在返回值的 .skipped
    • file_format 缺省沿用源文件格式（源格式未知时用 DEFAULT_FORMAT）
    • 任何引擎错误都使整个克隆失败，新文件句柄会被关闭
    返回新文件的 Dataset（需由调用方关闭）。
    """
    path = Path(path)
    if path.resolve() == Path(dsetin.path).resolve():
        raise CreateError(f"目标文件 {path} 就是源文件")
    ensure_new_file(path, clobber)

    t0 = time.time()
    engine = dsetin.engine
    file_format = FileFormat(file_format or dsetin.file_format or DEFAULT_FORMAT)
    handle = engine.create(path, file_format=file_format, clobber=clobber)
    dset = Dataset(handle=handle, path=path, engine=engine, file_format=file_format)
    try:
        _define_structure(dsetin, dset)
        engine.end_definition(handle)
        if copy_vardata:
            _copy_vardata(dsetin, dset)
    except MetaNCError:
        engine.close(handle)
        dset.closed = True
        raise

    log.info("✅ 已由 %s 生成 %s (%d 变量, 跳过 %d, %.1fs)",
             Path(dsetin.path).name, path.name, len(dset.variables),
             len(dset.skipped), time.time() - t0)
    return dset
