# python/vimscene/loader.py
# End-to-end VIM loading: bytes -> model -> mesh slices -> render batches
# Exists to run and time every pipeline stage behind one call
# RELEVANT FILES: python/vimscene/vim.py, python/vimscene/mesh_builder.py, python/vimscene/scene.py, tests/test_loader.py
from __future__ import annotations

import gzip
import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from .bfast import BufferLike, parse_bfast
from .config import ConfigSource, LoaderConfig, load_loader_config
from .mesh_builder import allocate_geometry
from .scene import SceneGeometry, compose_scene
from .vim import Vim, construct_vim

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


@dataclass
class VimScene:
    """A decoded model and, unless disabled, its render batches."""
    vim: Vim
    geometry: Optional[SceneGeometry] = None

    def get_element_name(self, node_index: int) -> Optional[str]:
        return self.vim.get_element_name(node_index)


class VimLoader:
    """Synchronous VIM decoder.

    Examples
    --------
    >>> scene = VimLoader().load("model.vim")
    >>> len(scene.geometry.batches)
    """

    def __init__(self, config: ConfigSource = None):
        self.config: LoaderConfig = load_loader_config(config)

    @contextmanager
    def _timed(self, task: str) -> Iterator[None]:
        if not self.config.log_timings:
            yield
            return
        logger.info("Started %s", task)
        start = time.perf_counter()
        yield
        logger.info("Ended %s in %.1f ms", task, (time.perf_counter() - start) * 1000.0)

    def parse(
        self,
        data: BufferLike,
        byte_offset: int = 0,
        byte_length: Optional[int] = None,
    ) -> VimScene:
        """Decode VIM bytes. Format errors propagate unchanged."""
        with self._timed("Parsing Vim"):
            bfast = parse_bfast(data, byte_offset, byte_length)
        logger.debug("found: %d buffers (%s)", len(bfast.buffers), ", ".join(bfast.names))

        with self._timed("Creating VIM"):
            vim = construct_vim(bfast, parse_assets=self.config.parse_assets)

        if not self.config.build_scene:
            return VimScene(vim)

        with self._timed("Allocating Geometry"):
            meshes = allocate_geometry(vim.g3d)
        logger.debug("Found # meshes %d", len(meshes))

        with self._timed("Composing Scene"):
            geometry = compose_scene(meshes, vim.g3d.instance_meshes, vim.g3d.instance_transforms)

        logger.info(
            "Loading completed: %d batches, bounding radius %.3f",
            len(geometry.batches),
            geometry.bounding_sphere.radius,
        )
        return VimScene(vim, geometry)

    def read_bytes(self, path: Union[str, Path]) -> bytes:
        """Read a file, inflating it if it is gzip-compressed."""
        data = Path(path).read_bytes()
        if self.config.decompress and data[:2] == GZIP_MAGIC:
            logger.debug("Decompressing gzip content from %s", path)
            data = gzip.decompress(data)
        return data

    def load(self, path: Union[str, Path]) -> VimScene:
        with self._timed(f"Loading {path}"):
            return self.parse(self.read_bytes(path))

    def load_async(
        self,
        source: Union[str, Path, BufferLike],
        executor: Optional[Executor] = None,
    ) -> Future:
        """Run :meth:`load` or :meth:`parse` on an executor.

        The decode itself has no cancellation points; ``Future.cancel()`` only
        succeeds before the task starts.
        """
        if isinstance(source, (str, Path)):
            task, arg = self.load, source
        else:
            task, arg = self.parse, source
        if executor is not None:
            return executor.submit(task, arg)
        pool = ThreadPoolExecutor(max_workers=1)
        try:
            return pool.submit(task, arg)
        finally:
            pool.shutdown(wait=False)


def load_vim(path: Union[str, Path], config: ConfigSource = None) -> VimScene:
    return VimLoader(config).load(path)


def parse_vim_scene(data: BufferLike, config: ConfigSource = None) -> VimScene:
    return VimLoader(config).parse(data)
