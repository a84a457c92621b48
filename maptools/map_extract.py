#!/usr/bin/env python3
"""Map item exporter.

Converts the game's saved map items (world/data/map_<n>.dat) to PNG images.

map_<n>.dat format:
  gzip stream wrapping a tag tree (see common/nbt.py)
  root Compound
    data Compound
      colors      Byte_Array  one palette index per pixel, row-major (128x128)
      scale       Byte        zoom level
      dimension   String/Int  dimension the map was drawn in
      xCenter     Int
      zCenter     Int
      ...

Palette indices resolve through common/palette.py (base color x shade).
Non-square grids are cut down to the largest square that fits, unless
--strict is given.

Usage:
  python maptools/map_extract.py -i saves/MyWorld/data
  python maptools/map_extract.py -i saves/MyWorld/data -o renders/ --jobs 4
  python maptools/map_extract.py -i saves/MyWorld/data --list
  python maptools/map_extract.py -i saves/MyWorld/data --meta --strict
"""

import argparse
import json
import math
import os
import sys
import time
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed

import numpy as np
from PIL import Image

try:
    from maptools.common import nbt
    from maptools.common.palette import MAP_PALETTE
except ImportError:
    sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
    from maptools.common import nbt
    from maptools.common.palette import MAP_PALETTE

DEFAULT_OUTPUT = 'output'
MAP_PREFIX = 'map_'
MAP_SUFFIX = '.dat'


class PaletteIndexError(nbt.ShapeError):
    """A color byte points past the end of the palette."""


class MapExportError(Exception):
    """A single map failed; carries the file name and pipeline stage."""

    def __init__(self, name, stage, cause):
        super().__init__(f"{stage}: {cause}")
        self.name = name
        self.stage = stage
        self.cause = cause


# ---------------------------------------------------------------------------
# Color grid
# ---------------------------------------------------------------------------

def extract_colors(tree):
    """Return the data.colors byte array from a decoded map tree."""
    try:
        return tree.get('data').get('colors').as_byte_array()
    except nbt.ShapeError as e:
        raise nbt.ShapeError(f"unexpected map data shape: {e}") from e


def render_colors(colors, palette=MAP_PALETTE, strict=False):
    """Resolve palette indices and lay them out as a (side, side, 4) RGBA array.

    side = isqrt(len(colors)); anything past side*side is dropped unless
    strict is set, in which case a non-square grid is a ShapeError.
    """
    palette = np.asarray(palette, dtype=np.uint8).reshape(-1, 4)
    indices = np.frombuffer(bytes(colors), dtype=np.uint8)
    if indices.size == 0:
        raise nbt.ShapeError("empty color grid")

    bad = np.flatnonzero(indices >= len(palette))
    if bad.size:
        first = int(bad[0])
        raise PaletteIndexError(
            f"palette index out of range: {indices[first]} at offset {first} "
            f"(palette has {len(palette)} entries, {bad.size} bad pixels)"
        )

    side = math.isqrt(indices.size)
    if strict and side * side != indices.size:
        raise nbt.ShapeError(f"color grid of {indices.size} entries is not square")

    pixels = palette[indices[:side * side]]
    return pixels.reshape(side, side, 4)


def write_png(grid, path):
    Image.fromarray(np.ascontiguousarray(grid, dtype=np.uint8)).save(path, format='PNG')


def _json_safe(value):
    # byte arrays nested in compounds/lists (banners, decorations) become hex
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value


def map_metadata(tree, side):
    """Header fields of the data compound for the JSON sidecar.

    Top-level arrays (colors) are left out; nested byte arrays are hex strings.
    """
    meta = {}
    for key, tag in tree.get('data').as_compound().items():
        if tag.tag_id in (nbt.TAG_BYTE_ARRAY, nbt.TAG_INT_ARRAY, nbt.TAG_LONG_ARRAY):
            continue
        meta[key] = _json_safe(tag.to_python())
    meta['width'] = side
    meta['height'] = side
    return meta


# ---------------------------------------------------------------------------
# Per-file pipeline
# ---------------------------------------------------------------------------

def output_name(name):
    return name[:-len(MAP_SUFFIX)] + '.png'


def export_map(path, out_dir, palette=MAP_PALETTE, strict=False, write_meta=False):
    """Convert one map_<n>.dat to PNG (+ optional JSON sidecar).

    Returns a stats dict. Any failure is raised as MapExportError.
    """
    name = os.path.basename(path)
    stage = 'read'
    try:
        with open(path, 'rb') as f:
            raw = f.read()

        stage = 'decode'
        tree = nbt.decode(raw)

        stage = 'shape'
        colors = extract_colors(tree)

        stage = 'render'
        grid = render_colors(colors, palette, strict=strict)
        side = grid.shape[0]

        stage = 'write'
        png_path = os.path.join(out_dir, output_name(name))
        write_png(grid, png_path)
        if write_meta:
            text = json.dumps(map_metadata(tree, side), indent=2)
            json_path = os.path.join(out_dir, name[:-len(MAP_SUFFIX)] + '.json')
            with open(json_path, 'w') as f:
                f.write(text)
    except Exception as e:
        raise MapExportError(name, stage, e) from e

    return {
        'name': name,
        'output': png_path,
        'side': side,
        'dropped': len(colors) - side * side,
        'size': len(raw),
    }


def export_all(input_dir, names, out_dir, palette=MAP_PALETTE, jobs=None,
               strict=False, write_meta=False, on_result=None):
    """Export every named map, one task per file, and wait for all of them.

    Returns (results, failures) where failures is a list of MapExportError.
    on_result(result_or_error) is called from the calling thread as each
    task finishes.
    """
    results = []
    failures = []
    with ThreadPoolExecutor(max_workers=jobs) as pool:
        futures = [
            pool.submit(export_map, os.path.join(input_dir, name), out_dir,
                        palette, strict, write_meta)
            for name in names
        ]
        for fut in as_completed(futures):
            try:
                r = fut.result()
            except MapExportError as e:
                failures.append(e)
                r = e
            else:
                results.append(r)
            if on_result:
                on_result(r)
    results.sort(key=lambda r: r['name'])
    failures.sort(key=lambda e: e.name)
    return results, failures


# ---------------------------------------------------------------------------
# Input / output folders
# ---------------------------------------------------------------------------

def find_map_files(input_dir):
    return sorted(
        n for n in os.listdir(input_dir)
        if n.startswith(MAP_PREFIX) and n.endswith(MAP_SUFFIX)
        and os.path.isfile(os.path.join(input_dir, n))
    )


def world_name(input_dir):
    """Name of the folder above the data folder, e.g. saves/MyWorld/data -> MyWorld."""
    sections = os.path.abspath(input_dir).split(os.sep)
    sections = [s for s in sections if s]
    if len(sections) < 2:
        raise ValueError(f"path does not have enough sections: {input_dir}")
    return sections[-2]


def ensure_folder(path):
    if os.path.isdir(path):
        print(f"folder already exists: {path}")
    else:
        os.makedirs(path, exist_ok=True)
        print(f"folder created: {path}")


def resolve_output_dir(input_dir, output):
    """Pick and create the output folder.

    With the default output, maps go to output/<world name>/; otherwise the
    given folder is used as-is.
    """
    out_dir = os.path.abspath(output)
    if output == DEFAULT_OUTPUT:
        out_dir = os.path.join(out_dir, world_name(input_dir))
    ensure_folder(out_dir)
    return out_dir


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def fatal(msg):
    print(f"Error: {msg}", file=sys.stderr)
    sys.exit(1)


def main(argv=None):
    ap = argparse.ArgumentParser(description='Export map_<n>.dat map items to PNG')
    ap.add_argument('-i', '--input', default='',
                    help='Folder containing map_*.dat files (usually <world>/data)')
    ap.add_argument('-o', '--output', default=DEFAULT_OUTPUT,
                    help=f'Output folder (default: {DEFAULT_OUTPUT}/<world name>)')
    ap.add_argument('-j', '--jobs', type=int, default=None,
                    help="Worker threads (default: executor default, 1 = serial)")
    ap.add_argument('--strict', action='store_true',
                    help='Fail maps whose color grid is not square instead of cropping')
    ap.add_argument('--meta', action='store_true',
                    help='Also write a JSON sidecar with the map header fields')
    ap.add_argument('--list', '-l', action='store_true',
                    help='List map files without exporting')
    ap.add_argument('--verbose', '-v', action='store_true',
                    help='Print tracebacks for failed maps')
    args = ap.parse_args(argv)

    for flag, value in (('i', args.input), ('o', args.output)):
        if value == '':
            print(f"{flag} not set (see -h)")
            return 0
    if args.jobs is not None and args.jobs < 1:
        fatal(f"--jobs must be at least 1, got {args.jobs}")

    try:
        names = find_map_files(args.input)
    except OSError as e:
        fatal(f"cannot read input folder: {e}")

    if args.list:
        print(f"Found {len(names)} map file(s) in {args.input}:\n")
        for n in names:
            size = os.path.getsize(os.path.join(args.input, n))
            print(f"  {n:20s}  {size:>8,d} bytes")
        return 0

    try:
        out_dir = resolve_output_dir(args.input, args.output)
    except (OSError, ValueError) as e:
        fatal(f"cannot prepare output folder: {e}")

    def report(r):
        if isinstance(r, MapExportError):
            print(f"  !! {r.name:20s} ERROR ({r.stage}): {r.cause}")
            if args.verbose:
                traceback.print_exception(type(r.cause), r.cause, r.cause.__traceback__)
            return
        note = f", cropped {r['dropped']} px" if r['dropped'] else ''
        print(f"  OK {r['name']:20s} -> {os.path.basename(r['output'])} "
              f"({r['side']}x{r['side']}{note})")

    start = time.perf_counter()
    results, failures = export_all(args.input, names, out_dir, MAP_PALETTE,
                                   jobs=args.jobs, strict=args.strict,
                                   write_meta=args.meta, on_result=report)
    elapsed = time.perf_counter() - start

    print(f"\nexported {len(results)} maps in {elapsed:.3f}s"
          + (f", {len(failures)} failed" if failures else ''))
    print(f"output saved to {out_dir}")
    return 1 if failures else 0


if __name__ == '__main__':
    sys.exit(main())
