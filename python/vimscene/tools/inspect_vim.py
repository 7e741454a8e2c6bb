#!/usr/bin/env python3
"""
VIM inspection tool

Decodes a VIM file and prints a summary of its header, entity tables,
geometry attributes and render batches, or the element name of one node.

Usage:
    python -m vimscene.tools.inspect_vim model.vim
    python -m vimscene.tools.inspect_vim model.vim --json
    python -m vimscene.tools.inspect_vim model.vim --node 42

RELEVANT FILES: python/vimscene/loader.py, python/vimscene/config.py
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from vimscene.config import load_loader_config
from vimscene.errors import VimFormatError
from vimscene.loader import VimLoader, VimScene
from vimscene.scene import InstancedBatch


def summarize(scene: VimScene) -> Dict[str, Any]:
    """Plain-data summary of a decoded scene."""
    vim = scene.vim
    g3d = vim.g3d
    summary: Dict[str, Any] = {
        "header": dict(vim.header.fields),
        "tables": {name: sorted(table) for name, table in vim.entities.items()},
        "strings": len(vim.strings),
        "assets": list(vim.assets.names) if vim.assets is not None else None,
        "attributes": [a.descriptor.description for a in g3d.g3d.attributes],
        "vertices": g3d.vertex_count,
        "meshes": g3d.mesh_count,
        "submeshes": g3d.submesh_count,
        "materials": g3d.material_count,
        "instances": g3d.instance_count,
    }
    geometry = scene.geometry
    if geometry is not None:
        merged = geometry.merged_batch
        summary["batches"] = {
            "instanced": len(geometry.instanced_batches),
            "instanced_slots": sum(b.count for b in geometry.batches if isinstance(b, InstancedBatch)),
            "merged_nodes": len(merged.nodes) if merged is not None else 0,
        }
        sphere = geometry.bounding_sphere
        summary["bounding_sphere"] = {"center": list(sphere.center), "radius": sphere.radius}
    return summary


def _print_summary(summary: Dict[str, Any]) -> None:
    for key, value in summary["header"].items():
        print(f"{key}: {value}")
    print(f"Entity tables: {len(summary['tables'])}")
    for name, columns in summary["tables"].items():
        print(f"  {name}: {', '.join(columns)}")
    print(f"Strings: {summary['strings']}")
    for attribute in summary["attributes"]:
        print(f"Attribute {attribute}")
    print(
        f"Vertices: {summary['vertices']}  Meshes: {summary['meshes']}  "
        f"Submeshes: {summary['submeshes']}  Materials: {summary['materials']}  "
        f"Instances: {summary['instances']}"
    )
    if "batches" in summary:
        b = summary["batches"]
        print(
            f"Batches: {b['instanced']} instanced ({b['instanced_slots']} slots), "
            f"{b['merged_nodes']} merged nodes"
        )
        s = summary["bounding_sphere"]
        print(f"Bounding sphere: center={s['center']} radius={s['radius']:.4f}")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect a VIM file")
    parser.add_argument("path", type=Path, help="VIM file (optionally gzip-compressed)")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    parser.add_argument("--node", type=int, default=None, help="Print the element name of a node")
    parser.add_argument("--config", type=Path, default=None, help="Loader config JSON file")
    parser.add_argument("--no-scene", action="store_true", help="Skip mesh building and instancing")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for INFO, -vv for DEBUG")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    overrides = {"build_scene": False} if args.no_scene else None
    config = load_loader_config(args.config, overrides=overrides)

    try:
        scene = VimLoader(config).load(args.path)
    except VimFormatError as e:
        print(f"Invalid VIM file {args.path}: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Could not read {args.path}: {e}", file=sys.stderr)
        return 1

    if args.node is not None:
        name = scene.get_element_name(args.node)
        print(name if name is not None else "<no name available>")
        return 0

    summary = summarize(scene)
    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        _print_summary(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
