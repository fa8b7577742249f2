"""
metanc
======
netCDF 文件的结构目录（维度 / 变量 / 属性）镜像与按名类型化读写工具包。
"""
from .catalog import (Dataset, Dimension, Variable, Compression,            # 目录模型
                      find_variable, find_dimension, get_vardim, get_dimlen,
                      show_dataset_info, variables_frame)
from .accessor import (open_dataset, close_dataset,                         # 内省
                       read_vardata, write_vardata,                         # 读写分发
                       read_attribute, attribute_names, to_dataarray)
from .creator import create_dataset                                         # 克隆
from .config import ElementType, FileFormat

__all__ = [
    "Dataset",
    "Dimension",
    "Variable",
    "Compression",
    "ElementType",
    "FileFormat",
    "open_dataset",
    "close_dataset",
    "create_dataset",
    "read_vardata",
    "write_vardata",
    "read_attribute",
    "attribute_names",
    "to_dataarray",
    "find_variable",
    "find_dimension",
    "get_vardim",
    "get_dimlen",
    "show_dataset_info",
    "variables_frame",
]
