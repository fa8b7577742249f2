"""
engine.py
存储引擎适配层：把 netCDF4 库包装成一组显式调用。
每个调用要么返回结果，要么抛 StorageError（原始异常挂在 __cause__ 上），
不存在“调用后再去查全局错误状态”的用法。
"""
from __future__ import annotations
import itertools
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import netCDF4
import numpy as np

from .config import DEFAULT_FORMAT, FOREIGN_FILTERS, GLOBAL, ElementType, FileFormat
from .exceptions import CreateError, StorageError

# netCDF-C 错误码
NC_EBADID = -33
NC_ENOTINDEFINE = -38

# netCDF4 把 nc_* 的失败报成 OSError / RuntimeError；其余异常类型只在具体调用处按需加入
_ENGINE_ERRORS = (OSError, RuntimeError)

@contextmanager
def _engine_call(what: str, *extra: type):
    try:
        yield
    except _ENGINE_ERRORS + extra as exc:
        raise StorageError(f"{what}: {exc}", code=getattr(exc, "errno", None)) from exc

_USER_TYPES = (netCDF4.CompoundType, netCDF4.VLType, netCDF4.EnumType)

def foreign_filters(filters: Optional[Dict[str, Any]]) -> Tuple[str, ...]:
    """filters() 结果中启用的非 zlib 压缩过滤器名"""
    return tuple(name for name in FOREIGN_FILTERS if (filters or {}).get(name))


# ──────────────── 查询结果 ────────────────────────────────────
@dataclass(frozen=True)
class Counts:
    ndims: int
    nvars: int
    natts: int
    unlimited: Optional[int]

@dataclass(frozen=True)
class DimInfo:
    name: str
    length: int

@dataclass(frozen=True)
class VarInfo:
    name: str
    element_type: ElementType
    natts: int
    dim_ids: Tuple[int, ...]
    complevel: int
    shuffle: bool
    datatype: Any = None                      # 仅 OTHER：引擎原始类型（str / CompoundType / ...）
    foreign_filters: Tuple[str, ...] = ()


# ──────────────── 引擎 ────────────────────────────────────────
class NetCDF4Engine:
    """
    句柄是整数，对应内部登记的 netCDF4.Dataset。
    维度 id = 维度在文件中的存储序号；变量 id = 变量名（netCDF4 按名寻址）。
    所有句柄都关闭了 auto mask/scale，读写是原样的类型化传输。
    """

    def __init__(self):
        self._handles: Dict[int, netCDF4.Dataset] = {}
        self._sealed: set = set()
        self._ids = itertools.count(1)

    @property
    def open_handles(self) -> int:
        return len(self._handles)

    # ---------- 文件 ----------
    def open(self, path: str | Path) -> int:
        with _engine_call(f"打开 {path}"):
            nc = netCDF4.Dataset(str(path), mode="r")
        handle = self._register(nc)
        self._sealed.add(handle)
        return handle

    def create(
        self,
        path: str | Path,
        *,
        file_format: FileFormat = DEFAULT_FORMAT,
        clobber: bool = True,
    ) -> int:
        file_format = FileFormat(file_format)
        try:
            nc = netCDF4.Dataset(str(path), mode="w", clobber=clobber, format=file_format.value)
        except _ENGINE_ERRORS as exc:
            raise CreateError(
                f"创建 {path} 失败: {exc}", code=getattr(exc, "errno", None)
            ) from exc
        return self._register(nc)

    def close(self, handle: int):
        nc = self._handles.pop(handle, None)
        self._sealed.discard(handle)
        if nc is None:
            raise StorageError(f"无效句柄 {handle}", code=NC_EBADID)
        with _engine_call("关闭文件"):
            nc.close()

    # ---------- 查询 ----------
    def inquire_format(self, handle: int) -> FileFormat:
        nc = self._get(handle)
        try:
            return FileFormat(nc.data_model)
        except ValueError as exc:
            raise StorageError(f"不认识的文件格式 {nc.data_model}") from exc

    def inquire_counts(self, handle: int) -> Counts:
        nc = self._get(handle)
        with _engine_call("查询文件概要"):
            dims = list(nc.dimensions.values())
            unlimited = [i for i, d in enumerate(dims) if d.isunlimited()]
            counts = Counts(len(dims), len(nc.variables), len(nc.ncattrs()),
                            unlimited[0] if unlimited else None)
        if len(unlimited) > 1:
            raise StorageError(f"文件含 {len(unlimited)} 个 unlimited 维度，不受支持")
        return counts

    def inquire_dimension(self, handle: int, index: int) -> DimInfo:
        nc = self._get(handle)
        with _engine_call(f"查询第 {index} 个维度", IndexError):
            dim = list(nc.dimensions.values())[index]
            return DimInfo(dim.name, len(dim))

    def inquire_variable(self, handle: int, index: int) -> VarInfo:
        nc = self._get(handle)
        with _engine_call(f"查询第 {index} 个变量", IndexError, ValueError):
            var = list(nc.variables.values())[index]
            dim_names = list(nc.dimensions)
            dim_ids = tuple(dim_names.index(d) for d in var.dimensions)
            filters = var.filters() or {}
            natts = len(var.ncattrs())
            datatype = var.datatype
        # 字符串 / vlen / compound / enum 照样入目录，类型记为 OTHER
        element_type, raw = ElementType.OTHER, datatype
        if datatype is not str and not isinstance(datatype, _USER_TYPES):
            try:
                element_type, raw = ElementType.from_dtype(datatype), None
            except (TypeError, ValueError):
                pass
        complevel = int(filters.get("complevel", 0)) if filters.get("zlib") else 0
        return VarInfo(
            name=var.name,
            element_type=element_type,
            natts=natts,
            dim_ids=dim_ids,
            complevel=complevel,
            shuffle=bool(filters.get("shuffle", False)),
            datatype=raw,
            foreign_filters=foreign_filters(filters),
        )

    def inquire_attribute_name(self, handle: int, target: Optional[str], index: int) -> str:
        obj = self._target(handle, target)
        with _engine_call(f"查询第 {index} 个属性名", IndexError):
            return obj.ncattrs()[index]

    def read_attribute(self, handle: int, target: Optional[str], name: str) -> Any:
        obj = self._target(handle, target)
        # netCDF4 对不存在的属性抛 AttributeError
        with _engine_call(f"读取属性 {name}", AttributeError):
            return obj.getncattr(name)

    # ---------- 定义 ----------
    def define_dimension(self, handle: int, name: str, length: Optional[int]) -> int:
        """length=None ⇒ unlimited"""
        nc = self._get(handle)
        self._check_define(handle)
        with _engine_call(f"定义维度 {name}"):
            nc.createDimension(name, length)
            return len(nc.dimensions) - 1

    def define_variable(
        self,
        handle: int,
        name: str,
        element_type: ElementType,
        dim_ids: Sequence[int],
        *,
        complevel: int = 0,
        shuffle: bool = False,
        fill_value: Any = None,
        datatype: Any = None,
    ) -> str:
        """
        压缩参数只能在创建变量时给出（写入数据前）。
        element_type=OTHER 时按 datatype 建变量，用户自定义类型先在新文件里重建。
        """
        nc = self._get(handle)
        self._check_define(handle)
        kwargs: Dict[str, Any] = {}
        if complevel > 0:
            kwargs.update(compression="zlib", complevel=complevel, shuffle=shuffle)
        if fill_value is not None:
            kwargs["fill_value"] = fill_value
        with _engine_call(f"定义变量 {name}"):
            if ElementType(element_type) is ElementType.OTHER:
                dtype = self._define_datatype(nc, datatype)
            else:
                dtype = ElementType(element_type).dtype
            dim_names = list(nc.dimensions)
            dims = tuple(dim_names[i] for i in dim_ids)
            var = nc.createVariable(name, dtype, dims, **kwargs)
            var.set_auto_maskandscale(False)
        return var.name

    def copy_attribute(
        self,
        src_handle: int,
        src_target: Optional[str],
        name: str,
        dst_handle: int,
        dst_target: Optional[str],
    ):
        value = self.read_attribute(src_handle, src_target, name)
        dst = self._target(dst_handle, dst_target)
        with _engine_call(f"写入属性 {name}"):
            dst.setncattr(name, value)

    def end_definition(self, handle: int):
        nc = self._get(handle)
        with _engine_call("结束定义阶段"):
            nc.sync()
        self._sealed.add(handle)

    # ---------- 数据 ----------
    def read_array(self, handle: int, var_id: str, shape: Sequence[int]) -> np.ndarray:
        var = self._variable(handle, var_id)
        with _engine_call(f"读取变量 {var_id}"):
            values = var[tuple(slice(0, n) for n in shape)]
        return np.ascontiguousarray(values)

    def write_array(self, handle: int, var_id: str, values: np.ndarray):
        """从各轴 0 处开始写；unlimited 轴超出当前长度时自动增长"""
        var = self._variable(handle, var_id)
        with _engine_call(f"写入变量 {var_id}"):
            var[tuple(slice(0, n) for n in values.shape)] = values

    # ======================================================================
    #                         —— 内部工具函数 ——
    # ======================================================================
    def _register(self, nc: netCDF4.Dataset) -> int:
        nc.set_auto_maskandscale(False)
        handle = next(self._ids)
        self._handles[handle] = nc
        return handle

    def _get(self, handle: int) -> netCDF4.Dataset:
        nc = self._handles.get(handle)
        if nc is None:
            raise StorageError(f"无效句柄 {handle}", code=NC_EBADID)
        return nc

    def _check_define(self, handle: int):
        if handle in self._sealed:
            raise StorageError("定义阶段已结束，不能再新增维度或变量", code=NC_ENOTINDEFINE)

    def _define_datatype(self, nc: netCDF4.Dataset, datatype: Any):
        """源文件的用户自定义类型属于源文件，同名类型在新文件中只建一次"""
        if not isinstance(datatype, _USER_TYPES):
            return datatype
        known = {**nc.cmptypes, **nc.vltypes, **nc.enumtypes}
        if datatype.name in known:
            return known[datatype.name]
        if isinstance(datatype, netCDF4.CompoundType):
            return nc.createCompoundType(datatype.dtype, datatype.name)
        if isinstance(datatype, netCDF4.VLType):
            return nc.createVLType(datatype.dtype, datatype.name)
        return nc.createEnumType(datatype.dtype, datatype.name, datatype.enum_dict)

    def _target(self, handle: int, target: Optional[str]):
        nc = self._get(handle)
        if target is GLOBAL:
            return nc
        return self._variable(handle, target)

    def _variable(self, handle: int, var_id: str) -> netCDF4.Variable:
        nc = self._get(handle)
        with _engine_call(f"查找变量 {var_id}", KeyError):
            var = nc.variables[var_id]
        var.set_auto_maskandscale(False)
        return var


# 进程内默认引擎
default_engine = NetCDF4Engine()
