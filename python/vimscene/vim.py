# python/vimscene/vim.py
# VIM model assembly: header, assets, entity tables, geometry and strings
# Exists as the single entry point that turns top-level BFast sections into one model
# RELEVANT FILES: python/vimscene/bfast.py, python/vimscene/entities.py, python/vimscene/g3d.py, tests/test_vim.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import numpy as np

from .bfast import BFast, BufferLike, parse_bfast, split_names
from .entities import EntityTable, construct_entity_tables
from .errors import InsufficientBuffers, MalformedContainer
from .g3d import VimG3d, construct_g3d

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = ("header", "geometry", "entities", "assets", "strings")

NODE_TABLE = "Vim.Node"
ELEMENT_TABLE = "Rvt.Element"
ELEMENT_COLUMN = "Rvt.Element"
NAME_COLUMN = "Name"


@dataclass(frozen=True)
class VimHeader:
    """Header text plus its ``key=value`` fields."""
    text: str
    fields: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, text: str) -> "VimHeader":
        fields: Dict[str, str] = {}
        for line in text.replace("\r\n", "\n").split("\n"):
            key, sep, value = line.partition("=")
            if sep and key.strip():
                fields[key.strip()] = value.strip()
        return cls(text, fields)

    @property
    def version(self) -> Optional[str]:
        return self.fields.get("vim")


@dataclass(frozen=True)
class Vim:
    """Immutable decoded VIM document."""
    header: VimHeader
    assets: Optional[BFast]
    g3d: VimG3d
    entities: Mapping[str, EntityTable]
    strings: List[str]

    def table(self, name: str) -> Optional[EntityTable]:
        return self.entities.get(name)

    def lookup(self, table: str, column: str, row: int) -> Optional[float]:
        """``entities[table][column][row]`` or None if any part is absent."""
        t = self.entities.get(table)
        if t is None:
            return None
        return t.value(column, row)

    def string(self, index: Optional[float]) -> Optional[str]:
        if index is None:
            return None
        i = int(index)
        if i < 0 or i >= len(self.strings):
            return None
        return self.strings[i]

    def get_element_index(self, node_index: int) -> Optional[int]:
        element = self.lookup(NODE_TABLE, ELEMENT_COLUMN, node_index)
        if element is None or element < 0:
            return None
        return int(element)

    def get_element_name(self, node_index: int) -> Optional[str]:
        """Resolve node -> element -> name string; None when any hop is missing."""
        element = self.get_element_index(node_index)
        if element is None:
            return None
        return self.string(self.lookup(ELEMENT_TABLE, NAME_COLUMN, element))


def decode_strings(buffer: np.ndarray) -> List[str]:
    """Split the string table; a missing trailing NUL is tolerated."""
    if buffer.size and buffer[-1] != 0:
        try:
            return buffer.tobytes().decode("utf-8").split("\0")
        except UnicodeDecodeError as e:
            raise MalformedContainer(f"Invalid UTF-8 in strings buffer: {e}") from e
    return split_names(buffer, "strings")


def construct_vim(bfast: BFast, parse_assets: bool = True) -> Vim:
    """Assemble a :class:`Vim` from the top-level container.

    Errors from the nested decoders propagate unchanged.
    """
    if len(bfast.buffers) < len(REQUIRED_SECTIONS):
        raise InsufficientBuffers(
            f"VIM requires at least five BFast buffers, found {len(bfast.buffers)}"
        )
    lookup = bfast.to_dict()
    missing = [name for name in REQUIRED_SECTIONS if name not in lookup]
    if missing:
        raise InsufficientBuffers(f"VIM is missing sections: {', '.join(missing)}")

    header_data = lookup["header"]
    logger.debug("Parsing header: %d bytes", header_data.size)
    try:
        header_text = header_data.tobytes().decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedContainer(f"Invalid UTF-8 in header: {e}") from e
    header = VimHeader.parse(header_text)

    g3d_data = lookup["geometry"]
    logger.debug("Constructing G3D: %d bytes", g3d_data.size)
    g3d = VimG3d(construct_g3d(parse_bfast(g3d_data)))
    logger.debug("Validating G3D")
    g3d.validate()

    assets = None
    if parse_assets:
        asset_data = lookup["assets"]
        logger.debug("Retrieving assets: %d bytes", asset_data.size)
        assets = parse_bfast(asset_data)
        logger.debug("Found %d assets", len(assets.buffers))

    entity_data = lookup["entities"]
    logger.debug("Constructing entity tables: %d bytes", entity_data.size)
    entities = construct_entity_tables(parse_bfast(entity_data))
    logger.debug("Found %d entity tables", len(entities))

    string_data = lookup["strings"]
    logger.debug("Decoding strings: %d bytes", string_data.size)
    strings = decode_strings(string_data)
    logger.debug("Found %d strings", len(strings))

    return Vim(header=header, assets=assets, g3d=g3d, entities=entities, strings=strings)


def parse_vim(
    data: BufferLike,
    byte_offset: int = 0,
    byte_length: Optional[int] = None,
    parse_assets: bool = True,
) -> Vim:
    """Decode raw VIM bytes into a :class:`Vim` model (no scene building)."""
    return construct_vim(parse_bfast(data, byte_offset, byte_length), parse_assets=parse_assets)
