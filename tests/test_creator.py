import logging

import netCDF4
import numpy as np
import pytest

from metanc import (
    attribute_names,
    create_dataset,
    open_dataset,
    read_attribute,
    read_vardata,
)
from metanc.catalog import Compression
from metanc.config import FILL_VALUE_ATTR, SUPPORTED_TYPES, ElementType, FileFormat
from metanc.exceptions import AttributeCopyError, CreateError, StorageError, TypeMismatchError


@pytest.fixture
def src(engine, sample_nc):
    ds = open_dataset(sample_nc, engine=engine)
    yield ds
    if not ds.closed:
        ds.close()


def _supported(ds):
    return [v for v in ds.variables if v.element_type in SUPPORTED_TYPES and 1 <= v.rank <= 4]


def test_clone_structure(src, tmp_path, engine):
    out = tmp_path / "clone.nc"
    create_dataset(src, out).close()

    with open_dataset(out, engine=engine) as dst:
        assert [d.name for d in dst.dimensions] == [d.name for d in src.dimensions]
        assert [d.unlimited for d in dst.dimensions] == [d.unlimited for d in src.dimensions]
        for d_src, d_dst in zip(src.dimensions, dst.dimensions):
            assert d_dst.length == (0 if d_src.unlimited else d_src.length)

        assert [v.name for v in dst.variables] == [v.name for v in src.variables]
        for v_src, v_dst in zip(src.variables, dst.variables):
            assert v_dst.element_type is v_src.element_type
            assert v_dst.dimensions == v_src.dimensions
            assert v_dst.compression == v_src.compression
    assert engine.open_handles == 1


def test_clone_returns_populated_catalog(src, tmp_path):
    with create_dataset(src, tmp_path / "clone.nc") as dst:
        assert dst.unlimited_dimension.name == "time"
        assert dst.unlimited_dimension.length == 0
        assert dst.find_variable("t").compression == Compression(4, True)
        assert dst.global_attribute_count == src.global_attribute_count
        assert dst.skipped == []


def test_clone_preserves_attributes(src, tmp_path, engine):
    out = tmp_path / "clone.nc"
    create_dataset(src, out).close()

    with open_dataset(out, engine=engine) as dst:
        assert attribute_names(dst) == attribute_names(src)
        for name in attribute_names(src):
            np.testing.assert_array_equal(read_attribute(dst, name), read_attribute(src, name))
        for var in src.variables:
            names = attribute_names(src, var.name)
            # _FillValue 只能在定义变量时写入，所以在新文件中排在最前，其余保持源顺序
            want_order = [n for n in names if n == FILL_VALUE_ATTR] + \
                [n for n in names if n != FILL_VALUE_ATTR]
            assert attribute_names(dst, var.name) == want_order
            for name in names:
                got = read_attribute(dst, name, var.name)
                want = read_attribute(src, name, var.name)
                np.testing.assert_array_equal(got, want)
                assert np.asarray(got).dtype == np.asarray(want).dtype

    # 直接用 netCDF4 再核对一次压缩设置
    with netCDF4.Dataset(str(out)) as nc:
        filters = nc.variables["t"].filters()
        assert filters["zlib"] and filters["complevel"] == 4 and filters["shuffle"]


def test_clone_copies_data(src, tmp_path, engine):
    out = tmp_path / "copy.nc"
    create_dataset(src, out, copy_vardata=True).close()

    with open_dataset(out, engine=engine) as dst:
        assert dst.find_dimension("time").length == 3
        for var in _supported(src):
            want = read_vardata(src, var.name, var.element_type, var.rank)
            got = read_vardata(dst, var.name, var.element_type, var.rank)
            assert got.dtype == want.dtype
            np.testing.assert_array_equal(got, want)


def test_clone_skips_unsupported_variable_with_one_warning(src, tmp_path, caplog):
    caplog.set_level(logging.WARNING, logger="metanc")
    with create_dataset(src, tmp_path / "copy.nc", copy_vardata=True) as dst:
        assert dst.skipped == ["flag"]
        np.testing.assert_array_equal(
            read_vardata(dst, "mask", "i4", 2), read_vardata(src, "mask", "i4", 2)
        )

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "flag" in warnings[0].getMessage()


def test_clone_onto_source_is_rejected(src):
    with pytest.raises(CreateError):
        create_dataset(src, src.path)


def test_clone_into_missing_directory(src, tmp_path):
    with pytest.raises(CreateError):
        create_dataset(src, tmp_path / "missing" / "clone.nc")


def test_clone_without_clobber_onto_existing_file(src, tmp_path):
    out = tmp_path / "clone.nc"
    out.write_bytes(b"")
    with pytest.raises(CreateError):
        create_dataset(src, out, clobber=False)


def test_attribute_copy_failure_aborts_and_releases_handle(src, tmp_path, engine, monkeypatch):
    def boom(*args):
        raise StorageError("NetCDF: Attribute not found", code=-43)

    monkeypatch.setattr(engine, "copy_attribute", boom)
    with pytest.raises(AttributeCopyError) as exc:
        create_dataset(src, tmp_path / "clone.nc")
    assert exc.value.code == -43
    assert isinstance(exc.value.__cause__, StorageError)
    assert engine.open_handles == 1


def test_data_copy_failure_aborts_clone(src, tmp_path, engine, monkeypatch):
    def boom(handle, var_id, values):
        raise StorageError("NetCDF: HDF error", code=-101)

    monkeypatch.setattr(engine, "write_array", boom)
    with pytest.raises(StorageError):
        create_dataset(src, tmp_path / "clone.nc", copy_vardata=True)
    assert engine.open_handles == 1


def test_clone_is_frozen(src, tmp_path, engine):
    with create_dataset(src, tmp_path / "clone.nc") as dst:
        with pytest.raises(StorageError):
            engine.define_dimension(dst.handle, "extra", 2)


def test_fill_value_moves_to_front(tmp_path, engine):
    path = tmp_path / "late_fill.nc"
    with netCDF4.Dataset(str(path), "w", format="NETCDF4_CLASSIC") as nc:
        nc.createDimension("x", 2)
        v = nc.createVariable("v", "f4", ("x",))
        v.units = "K"
        v.setncattr(FILL_VALUE_ATTR, np.float32(-1))  # 空变量上仍可补写
    with open_dataset(path, engine=engine) as ds:
        assert attribute_names(ds, "v") == ["units", FILL_VALUE_ATTR]
        with create_dataset(ds, tmp_path / "clone.nc") as dst:
            assert attribute_names(dst, "v") == [FILL_VALUE_ATTR, "units"]


def test_clone_keeps_source_format(tmp_path, engine, enhanced_nc, caplog):
    caplog.set_level(logging.WARNING, logger="metanc")
    with open_dataset(enhanced_nc, engine=engine) as ds:
        assert ds.file_format is FileFormat.NETCDF4
        with create_dataset(ds, tmp_path / "copy.nc", copy_vardata=True) as dst:
            assert dst.file_format is FileFormat.NETCDF4
            assert dst.skipped == ["u", "names"]

    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 2
    assert "u" in warnings[0] and "names" in warnings[1]

    with netCDF4.Dataset(str(tmp_path / "copy.nc")) as nc:
        assert nc.data_model == "NETCDF4"
        assert nc.variables["u"].dtype == np.dtype("u1")


def test_clone_unsigned_byte_variable(tmp_path, engine, caplog):
    path = tmp_path / "u1.nc"
    with netCDF4.Dataset(str(path), "w", format="NETCDF4") as nc:
        nc.createDimension("x", 3)
        nc.createVariable("a", "f4", ("x",))[:] = np.array([1, 2, 3], dtype="f4")
        nc.createVariable("u", "u1", ("x",))[:] = np.array([7, 8, 9], dtype="u1")

    caplog.set_level(logging.WARNING, logger="metanc")
    with open_dataset(path, engine=engine) as ds:
        assert ds.find_variable("u").element_type is ElementType.UINT8
        create_dataset(ds, tmp_path / "copy.nc", copy_vardata=True).close()

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "u" in warnings[0].getMessage()
    with open_dataset(tmp_path / "copy.nc", engine=engine) as dst:
        assert dst.file_format is FileFormat.NETCDF4
        assert dst.find_variable("u").element_type is ElementType.UINT8
        np.testing.assert_array_equal(read_vardata(dst, "a", "f4", 1), [1, 2, 3])


def test_string_variable_is_opened_and_cloned(tmp_path, engine, enhanced_nc):
    with open_dataset(enhanced_nc, engine=engine) as ds:
        names = ds.find_variable("names")
        assert names.element_type is ElementType.OTHER
        with pytest.raises(TypeMismatchError):
            read_vardata(ds, "names", ElementType.OTHER, 1)
        create_dataset(ds, tmp_path / "copy.nc", copy_vardata=True).close()

    with open_dataset(tmp_path / "copy.nc", engine=engine) as dst:
        assert dst.find_variable("names").element_type is ElementType.OTHER
        assert dst.find_dimension("x").length == 3
        np.testing.assert_array_equal(read_vardata(dst, "a", "f4", 1), [0.5, 1.5, 2.5])
    assert engine.open_handles == 0


def test_file_format_override(src, tmp_path, engine):
    out = tmp_path / "nc4.nc"
    create_dataset(src, out, file_format=FileFormat.NETCDF4).close()
    with open_dataset(out, engine=engine) as dst:
        assert dst.file_format is FileFormat.NETCDF4
    assert src.file_format is FileFormat.NETCDF4_CLASSIC


def test_foreign_compression_is_reported(src, tmp_path, caplog):
    src.find_variable("t").foreign_filters = ("zstd",)
    caplog.set_level(logging.WARNING, logger="metanc")
    create_dataset(src, tmp_path / "clone.nc").close()

    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "t" in warnings[0] and "zstd" in warnings[0]
