# lmkforge

Tools for working with terrain *landmark* maps of planetary bodies (Earth,
Moon, Mars). A landmark is a regular elevation grid plus a surface
reflectance map (SRM), tied to the body-fixed frame through an anchor point
and a world-to-map rotation.

## Installation

```
pip install .
```

The package needs numpy and pillow.

## What is in it

- `lmkforge.datum`: the `Planet`, `Projection` and `Ellipsoid` types,
  `ellipsoid_for`, and conversions between latitude/longitude/height and
  body-fixed (ECEF) coordinates for ellipsoid and sphere models
  (`lat_long_height_to_ecef`, `ecef_to_lat_long_height` and their `_sphere`
  variants). `localmap_to_ecef_rotation` builds the east/north/up rotation at
  a point; `planet_from_str` and `projection_from_str` parse names (any
  prefix of the name is accepted, anything else raises `ValueError`).
- `lmkforge.projections`: equidistant cylindrical, orthographic and
  stereographic projections and their inverses.
- `lmkforge.landmark`: the `Landmark` dataclass (maps indexed
  `[row, col]`), bilinear grid interpolation (`interpolate_float_grid`,
  `interpolate_uint8_grid`), pixel/world conversions, and the binary
  landmark file format (`Landmark.write`, `read_landmark`). Writing a
  landmark also writes an ASCII header to the same path with `.txt` added.
- `lmkforge.landmark_ops`: intersects world-frame rays with the landmark
  plane (`intersect_map_plane`) and its terrain (`intersect_elevation`,
  `intersect_elevation_low_slant`), and returns new landmarks from
  `subset_landmark`, `resample_landmark`, `rescale_landmark` and
  `crop_interpolate_landmark`.
- `lmkforge.point_cloud`: grids points into a landmark by distance-weighted
  averaging (`point_to_landmark`), reads ASCII `X Y Z intensity` files
  (`read_points_ascii`) and PLY files (`read_ply`), and writes landmarks as
  PLY meshes or point clouds (`write_ply_facet_window`, `write_ply_facet`,
  `write_ply_points`) in ASCII or binary storage, in the world, local-map or
  raster frame.
- `lmkforge.draw`: draws lines, arrows, boxes, circles, ellipses and
  feature markers in place on 2-D numpy greyscale images.
- `lmkforge.image_utils`: loads and saves monochrome or planar
  (channel-separated) RGB images, and converts between planar and
  interleaved RGB.

## Examples

```python
from lmkforge.datum import Planet, lat_long_height_to_ecef, ecef_to_lat_long_height

point = lat_long_height_to_ecef(10.0, 20.0, 100.0, Planet.MOON)
lat, lon, height = ecef_to_lat_long_height(point, Planet.MOON)
```

```python
from lmkforge.landmark import read_landmark
from lmkforge.landmark_ops import rescale_landmark
from lmkforge.point_cloud import PlyStorageMode, PointFrame, write_ply_points

lmk = read_landmark("site.lmk")
coarse = rescale_landmark(lmk, 10.0)   # 10 metres per pixel
coarse.write("site_10m.lmk")           # also writes site_10m.lmk.txt
write_ply_points("site_10m.ply", coarse, PlyStorageMode.ASCII, PointFrame.LOCAL)
```

## What it does not do

- It does not build a landmark from a DEM or GeoTIFF, nor read a landmark
  creation configuration; landmarks come from landmark files, from point
  clouds gridded into a landmark whose header you have set up, or from
  transforming an existing landmark.
- It has no UTM or Lambert conformal conic projections; only the
  projections in `lmkforge.projections` are available.
- It has no command-line tool; everything is used from Python.

## Running the tests

```
pip install .[test]
pytest
```