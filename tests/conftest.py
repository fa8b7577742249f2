from pathlib import Path

import netCDF4
import numpy as np
import pytest

from metanc.engine import NetCDF4Engine

NTIME, NLEV, NLAT, NLON = 3, 2, 3, 4


def _write_sample(path: Path):
    """time(unlimited) × lev × lat × lon 的小文件，覆盖 f4/f8/i4/i2 以及一个 i1 变量"""
    with netCDF4.Dataset(str(path), "w", format="NETCDF4_CLASSIC") as nc:
        nc.title = "demo"
        nc.version = np.int32(2)
        nc.levels = np.array([1.5, 2.5], dtype="f4")

        nc.createDimension("time", None)
        nc.createDimension("lev", NLEV)
        nc.createDimension("lat", NLAT)
        nc.createDimension("lon", NLON)

        time = nc.createVariable("time", "f8", ("time",))
        time.units = "hours since 2025-07-24 00:00:00"
        time[0:NTIME] = np.arange(NTIME, dtype="f8") * 6

        lat = nc.createVariable("lat", "f4", ("lat",))
        lat.units = "degrees_north"
        lat[:] = np.array([0.0, 1.5, 3.0], dtype="f4")

        t = nc.createVariable(
            "t", "f4", ("time", "lev", "lat", "lon"),
            compression="zlib", complevel=4, shuffle=True, fill_value=np.float32(-999),
        )
        t.units = "K"
        t.long_name = "temperature"
        t[0:NTIME] = np.arange(NTIME * NLEV * NLAT * NLON, dtype="f4").reshape(
            NTIME, NLEV, NLAT, NLON) + 250

        ps = nc.createVariable("ps", "f8", ("time", "lat", "lon"))
        ps[0:NTIME] = np.linspace(9.9e4, 1.01e5, NTIME * NLAT * NLON).reshape(NTIME, NLAT, NLON)

        mask = nc.createVariable("mask", "i4", ("lat", "lon"))
        mask[:] = np.arange(NLAT * NLON, dtype="i4").reshape(NLAT, NLON) % 2

        code = nc.createVariable("code", "i2", ("lon",))
        code.valid_range = np.array([0, 100], dtype="i2")
        code[:] = np.array([3, 1, 4, 1], dtype="i2")

        flag = nc.createVariable("flag", "i1", ("lat",))
        flag[:] = np.array([1, 0, 1], dtype="i1")


@pytest.fixture
def engine() -> NetCDF4Engine:
    return NetCDF4Engine()


@pytest.fixture
def sample_nc(tmp_path) -> Path:
    path = tmp_path / "sample.nc"
    _write_sample(path)
    return path


def _write_enhanced(path: Path):
    """NETCDF4 格式：一个 f4、一个 u1 和一个 vlen 字符串变量"""
    with netCDF4.Dataset(str(path), "w", format="NETCDF4") as nc:
        nc.createDimension("x", 3)
        a = nc.createVariable("a", "f4", ("x",))
        a.units = "m"
        a[:] = np.array([0.5, 1.5, 2.5], dtype="f4")
        u = nc.createVariable("u", "u1", ("x",))
        u[:] = np.array([7, 8, 9], dtype="u1")
        names = nc.createVariable("names", str, ("x",))
        names[:] = np.array(["alpha", "beta", "gamma"], dtype=object)


@pytest.fixture
def enhanced_nc(tmp_path) -> Path:
    path = tmp_path / "enhanced.nc"
    _write_enhanced(path)
    return path
