"""
TiledResource: load a map and everything it references.

=============================================================================
LOAD STAGES
=============================================================================

    IDLE
      -> FETCHING_MAP             file loader reads the .tmx/.tmj
      -> PARSING_MAP              XML or JSON front-end, schema validation
      -> RESOLVING_DEPENDENCIES   external tilesets, templates and images
                                  are scheduled in three caches
      -> LOADING_DEPENDENCIES     every task settles (tasks may schedule
                                  more: a tileset file schedules its images,
                                  a template schedules its tileset)
      -> READY                    tilesets, templates and layers are built

Any error moves the resource to FAILED and is re-raised. Dependency
failures are collected and raised together as one DependencyLoadFailure.

=============================================================================
WHERE RELATIVE PATHS POINT
=============================================================================

    map tileset source         relative to the map
    embedded tileset image(s)  relative to the map
    external tileset image(s)  relative to the tileset file
    template                   relative to the map
    template tileset source    relative to the template file
    image layer image          relative to the map

The path map is consulted first in every case.

=============================================================================
USAGE
=============================================================================

    resource = TiledResource('maps/level1.tmx', TiledResourceOptions(headless=True))
    await resource.load()
    walls = resource.get_tile_layers('Walls')[0]
    cell = walls.get_tile_by_coordinate(3, 4)

=============================================================================
"""

import asyncio
import enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .cache import LoaderCache, settle
from .config import TiledResourceOptions
from .errors import DependencyLoadFailure, ResourceNotLoaded
from .file_loader import filesystem_loader, kind_for_path
from .gid import isometric_to_world
from .images import ImageSource
from .layers import (
    BuildContext, CameraDescription, ImageLayer, Layer, ObjectLayer, TileCell,
    TileLayer, build_layer,
)
from .log import get_logger
from .objects import MapObject
from .parser import TiledParser
from .paths import extension_of, path_relative_to_base
from .properties import by_class, by_name, by_property, get_prop
from .resolver import GidResolver
from .schema import TiledMap, TiledTemplate
from .template import Template
from .tileset import Animation, Collider, Sprite, Tile, Tileset

logger = get_logger('resource')

_UNSET = object()


class LoadState(enum.Enum):
    IDLE = 'idle'
    FETCHING_MAP = 'fetching_map'
    PARSING_MAP = 'parsing_map'
    RESOLVING_DEPENDENCIES = 'resolving_dependencies'
    LOADING_DEPENDENCIES = 'loading_dependencies'
    READY = 'ready'
    FAILED = 'failed'


def _property_filter(name: str, value: Any):
    return by_property(name) if value is _UNSET else by_property(name, value)


class TiledResource:
    """
    A Tiled map and its dependency graph.

    Parameters:
    -----------
    path : str
        Path (or URL, whatever the file loader understands) of the map
    options : TiledResourceOptions, optional
        Loader configuration, see tmx_loader.config
    """

    def __init__(self, path: str, options: Optional[TiledResourceOptions] = None):
        self.path = path
        self.options = options or TiledResourceOptions()
        self.state = LoadState.IDLE
        self.failure_reason: Optional[str] = None

        if self.options.map_format_override:
            self.map_format = self.options.map_format_override
        else:
            self.map_format = 'TMX' if extension_of(path) == 'tmx' else 'TMJ'

        self.parser = TiledParser()
        self.file_loader = self.options.file_loader or filesystem_loader
        self.image_loader = self.options.image_loader or ImageSource

        self.map: Optional[TiledMap] = None
        self.tilesets: List[Tileset] = []
        self.templates: List[Template] = []
        self.layers: List[Layer] = []
        self.resolver: Optional[GidResolver] = None
        self.camera: Optional[CameraDescription] = None

        self.factories: Dict[str, Callable[..., Any]] = {}
        self._load_started = False
        self._load_task: Optional[asyncio.Future] = None

        # template reference as written in the map -> resolved path
        self._template_refs: Dict[str, str] = {}

        self._tileset_cache: LoaderCache = LoaderCache('tilesets', self._load_tileset_document)
        self._template_cache: LoaderCache = LoaderCache('templates', self._load_template_document)
        self._image_cache: LoaderCache = LoaderCache('images', self._load_image)

        for class_name, factory in self.options.entity_class_name_factories.items():
            self.register_entity_factory(class_name, factory)

    # -------------------------------------------------------------------------
    # Entity factories
    # -------------------------------------------------------------------------

    def register_entity_factory(self, class_name: str,
                                factory: Callable[..., Any]) -> bool:
        """
        Build objects of class class_name with factory(FactoryProps).

        Only allowed before load() starts; later registrations are
        rejected with a warning. Returns whether the factory was added.
        """
        if self._load_started:
            logger.warning(
                f"Factory for tiled class/type {class_name!r} registered after "
                f"{self.path} started loading, it will not be used"
            )
            return False
        if class_name in self.factories:
            logger.warning(
                f"Another factory has already been registered for tiled "
                f"class/type {class_name!r}, this is probably a bug"
            )
        self.factories[class_name] = factory
        return True

    def unregister_entity_factory(self, class_name: str):
        if class_name not in self.factories:
            logger.warning(
                f"No factory has been registered for tiled class/type "
                f"{class_name!r}, cannot unregister"
            )
            return
        del self.factories[class_name]

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def is_loaded(self) -> bool:
        return self.state is LoadState.READY

    def _set_state(self, state: LoadState):
        logger.debug(f"{self.path}: {self.state.value} -> {state.value}")
        self.state = state

    def _resolve(self, base: str, relative: str) -> str:
        return path_relative_to_base(base, relative, self.options.path_map)

    async def load(self) -> 'TiledResource':
        """
        Load the map and its dependencies. Calling it again returns the
        same load (and raises the same error if it failed).
        """
        if self._load_task is None:
            self._load_started = True
            self._load_task = asyncio.ensure_future(self._load())
        await self._load_task
        return self

    async def _load(self):
        try:
            self._set_state(LoadState.FETCHING_MAP)
            raw = await self._fetch_map()

            self._set_state(LoadState.PARSING_MAP)
            strict = self.options.strict
            if self.map_format == 'TMX':
                self.map = self.parser.parse(raw, strict, source=self.path)
            else:
                self.map = self.parser.parse_json(raw, strict, source=self.path)

            self._set_state(LoadState.RESOLVING_DEPENDENCIES)
            self._collect_tilesets()
            self._collect_templates()
            self._collect_image_layers()

            self._set_state(LoadState.LOADING_DEPENDENCIES)
            await settle([self._tileset_cache, self._template_cache, self._image_cache])

            self._build()
            self._set_state(LoadState.READY)
            logger.info(
                f"Loaded {self.path}: {len(self.tilesets)} tileset(s), "
                f"{len(self.templates)} template(s), {len(self.layers)} layer(s)"
            )
        except Exception as e:
            self.failure_reason = f"{type(e).__name__}: {e}"
            self._set_state(LoadState.FAILED)
            raise

    async def _fetch_map(self):
        kind = 'xml' if self.map_format == 'TMX' else 'json'
        try:
            return await self.file_loader(self.path, kind)
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            logger.error(f"Error loading map at {self.path}: {reason}")
            raise DependencyLoadFailure([(self.path, reason)]) from e

    # -------------------------------------------------------------------------
    # Cache factories. These only fetch and parse; nested dependencies are
    # scheduled, never awaited, so each failure is reported once.
    # -------------------------------------------------------------------------

    async def _load_tileset_document(self, path: str):
        kind = kind_for_path(path, ('.tsx',))
        raw = await self.file_loader(path, kind)
        if kind == 'xml':
            document = self.parser.parse_external_tileset(raw, self.options.strict, source=path)
        else:
            document = self.parser.parse_external_tileset_json(raw, self.options.strict, source=path)
        logger.info(f"Loaded tileset {document.name!r} from {path}")
        self._collect_tileset_images(document, path)
        return document

    async def _load_template_document(self, path: str) -> TiledTemplate:
        kind = kind_for_path(path, ('.tx',))
        raw = await self.file_loader(path, kind)
        if kind == 'xml':
            document = self.parser.parse_external_template(raw, self.options.strict, source=path)
        else:
            document = self.parser.parse_external_template_json(raw, self.options.strict, source=path)
        if document.tileset is not None:
            self._tileset_cache.get_or_add(self._resolve(path, document.tileset.source))
        return document

    async def _load_image(self, path: str):
        handle = self.image_loader(path)
        await handle.load()
        return handle

    # -------------------------------------------------------------------------
    # Dependency discovery
    # -------------------------------------------------------------------------

    def _tileset_image_paths(self, document, base: str) -> List[Tuple[Optional[int], str]]:
        """(local tile id or None for the sheet, resolved image path)."""
        if document.kind == 'single_image':
            return [(None, self._resolve(base, document.image))]
        return [(tile.id, self._resolve(base, tile.image))
                for tile in document.tiles if tile.image]

    def _collect_tileset_images(self, document, base: str):
        if self.options.headless:
            return
        for _, image_path in self._tileset_image_paths(document, base):
            self._image_cache.get_or_add(image_path)

    def _collect_tilesets(self):
        for tileset in self.map.tilesets:
            if tileset.kind == 'external':
                self._tileset_cache.get_or_add(self._resolve(self.path, tileset.source))
            else:
                self._collect_tileset_images(tileset, self.path)

    def _collect_templates(self):
        for layer in self.map.layers:
            if layer.type != 'objectgroup':
                continue
            for obj in layer.objects:
                if obj.template and obj.template not in self._template_refs:
                    template_path = self._resolve(self.path, obj.template)
                    self._template_refs[obj.template] = template_path
                    self._template_cache.get_or_add(template_path)

    def _collect_image_layers(self):
        if self.options.headless:
            return
        for layer in self.map.layers:
            if layer.type == 'imagelayer' and layer.image:
                self._image_cache.get_or_add(self._resolve(self.path, layer.image))

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    def _make_tileset(self, document, firstgid: Optional[int], base: str,
                      images: Dict[str, Any], source: Optional[str] = None) -> Tileset:
        image = None
        tile_images = {}
        if not self.options.headless:
            for tile_id, image_path in self._tileset_image_paths(document, base):
                if tile_id is None:
                    image = images.get(image_path)
                else:
                    tile_images[tile_id] = images.get(image_path)
        return Tileset(document, firstgid if firstgid is not None else 1,
                       image=image, tile_images=tile_images, source=source)

    def _build(self):
        tiled_map = self.map
        images = dict(self._image_cache.items())

        for tileset in tiled_map.tilesets:
            if tileset.kind == 'external':
                path = self._resolve(self.path, tileset.source)
                document = self._tileset_cache.result(path)
                self.tilesets.append(
                    self._make_tileset(document, tileset.firstgid, path, images, source=path)
                )
            else:
                self.tilesets.append(
                    self._make_tileset(tileset, tileset.firstgid, self.path, images)
                )

        self.resolver = GidResolver(
            self.tilesets, tiled_map.orientation, tiled_map.tilewidth, tiled_map.tileheight
        )

        templates_by_path: Dict[str, Template] = {}
        templates_by_ref: Dict[str, Template] = {}
        for ref, path in self._template_refs.items():
            template = templates_by_path.get(path)
            if template is None:
                document = self._template_cache.result(path)
                tileset = None
                if document.tileset is not None:
                    tileset_path = self._resolve(path, document.tileset.source)
                    tileset = self._make_tileset(
                        self._tileset_cache.result(tileset_path),
                        document.tileset.firstgid, tileset_path, images, source=tileset_path,
                    )
                template = Template(path, document, tileset, tiled_map.orientation)
                templates_by_path[path] = template
            templates_by_ref[ref] = template
        self.templates = list(templates_by_path.values())

        context = BuildContext(
            tiled_map=tiled_map,
            resolver=self.resolver,
            options=self.options,
            templates=templates_by_ref,
            images=images,
            factories=dict(self.factories),
            map_path=self.path,
        )
        for order, layer in enumerate(tiled_map.layers):
            image_path = None
            if layer.type == 'imagelayer' and layer.image:
                image_path = self._resolve(self.path, layer.image)
            self.layers.append(build_layer(layer, order, context, image_path))

        self.camera = self._find_camera()

    def _find_camera(self) -> Optional[CameraDescription]:
        # runs inside _build, before the resource is READY
        for layer in self.layers:
            if not isinstance(layer, ObjectLayer):
                continue
            for obj in layer.objects:
                if not get_prop(obj.properties, 'camera'):
                    continue
                zoom = get_prop(obj.properties, 'zoom')
                if not isinstance(zoom, (int, float)) or isinstance(zoom, bool):
                    zoom = 1.0
                if self.map.orientation == 'isometric':
                    pos = isometric_to_world(obj.x, obj.y, self.map.tilewidth, self.map.tileheight)
                else:
                    pos = (obj.x, obj.y)
                return CameraDescription(pos=pos, zoom=float(zoom), object=obj)
        return None

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _check_loaded(self, what: str):
        if not self.is_loaded():
            raise ResourceNotLoaded(
                f"{self.path} is {self.state.value}, {what}() needs a finished load"
            )

    def isometric_tiled_coord_to_world(self, x: float, y: float) -> Tuple[float, float]:
        """Project Tiled isometric pixel coordinates using the map's tile size."""
        self._check_loaded('isometric_tiled_coord_to_world')
        return isometric_to_world(x, y, self.map.tilewidth, self.map.tileheight)

    # layers

    def get_layers_by_name(self, name: str) -> List[Layer]:
        self._check_loaded('get_layers_by_name')
        return [layer for layer in self.layers if by_name(name)(layer)]

    def get_layers_by_class_name(self, class_name: str) -> List[Layer]:
        self._check_loaded('get_layers_by_class_name')
        return [layer for layer in self.layers if by_class(class_name)(layer)]

    def get_layers_by_property(self, name: str, value: Any = _UNSET) -> List[Layer]:
        self._check_loaded('get_layers_by_property')
        predicate = _property_filter(name, value)
        return [layer for layer in self.layers if predicate(layer)]

    def _layers_of(self, cls, name: Optional[str]) -> list:
        self._check_loaded(f"get_{cls.kind}_layers")
        layers = [layer for layer in self.layers if isinstance(layer, cls)]
        if name is not None:
            layers = [layer for layer in layers if by_name(name)(layer)]
        return layers

    def get_tile_layers(self, name: Optional[str] = None) -> List[TileLayer]:
        return self._layers_of(TileLayer, name)

    def get_object_layers(self, name: Optional[str] = None) -> List[ObjectLayer]:
        return self._layers_of(ObjectLayer, name)

    def get_image_layers(self, name: Optional[str] = None) -> List[ImageLayer]:
        return self._layers_of(ImageLayer, name)

    # tilesets and tile metadata

    def get_tilesets_by_name(self, name: str) -> List[Tileset]:
        self._check_loaded('get_tilesets_by_name')
        return [t for t in self.tilesets if by_name(name)(t)]

    def get_tilesets_by_class_name(self, class_name: str) -> List[Tileset]:
        self._check_loaded('get_tilesets_by_class_name')
        return [t for t in self.tilesets if by_class(class_name)(t)]

    def get_tilesets_by_property(self, name: str, value: Any = _UNSET) -> List[Tileset]:
        self._check_loaded('get_tilesets_by_property')
        predicate = _property_filter(name, value)
        return [t for t in self.tilesets if predicate(t)]

    def get_tileset_for_gid(self, gid: int) -> Tileset:
        self._check_loaded('get_tileset_for_gid')
        return self.resolver.resolve_tileset(gid)

    def get_tile_for_gid(self, gid: int) -> Optional[Tile]:
        self._check_loaded('get_tile_for_gid')
        return self.resolver.resolve_tile(gid)

    def get_sprite_for_gid(self, gid: int) -> Sprite:
        self._check_loaded('get_sprite_for_gid')
        return self.resolver.sprite_for_gid(gid)

    def get_animation_for_gid(self, gid: int) -> Optional[Animation]:
        self._check_loaded('get_animation_for_gid')
        return self.resolver.animation_for_gid(gid)

    def get_colliders_for_gid(self, gid: int) -> List[Collider]:
        self._check_loaded('get_colliders_for_gid')
        return self.resolver.colliders_for_gid(gid)

    def get_tile_metadata_by_class_name(self, class_name: str) -> List[Tile]:
        """Tile entries (not placed cells) of every tileset with this class."""
        self._check_loaded('get_tile_metadata_by_class_name')
        predicate = by_class(class_name)
        return [tile for t in self.tilesets for tile in t.tiles if predicate(tile)]

    def get_tile_metadata_by_property(self, name: str, value: Any = _UNSET) -> List[Tile]:
        self._check_loaded('get_tile_metadata_by_property')
        predicate = _property_filter(name, value)
        return [tile for t in self.tilesets for tile in t.tiles if predicate(tile)]

    # placed tiles

    def get_tiles_by_gid(self, gid: int) -> List[TileCell]:
        return [c for layer in self.get_tile_layers() for c in layer.get_tiles_by_gid(gid)]

    def get_tiles_by_class_name(self, class_name: str) -> List[TileCell]:
        return [c for layer in self.get_tile_layers()
                for c in layer.get_tiles_by_class_name(class_name)]

    def get_tiles_by_property(self, name: str, value: Any = _UNSET) -> List[TileCell]:
        return [c for layer in self.get_tile_layers()
                for c in layer.get_tiles_by_property(name, value)]

    def get_tile_by_coordinate(self, layer_name: str, x: int, y: int) -> Optional[TileCell]:
        """Cell at (x, y) of the first tile layer named layer_name."""
        for layer in self.get_tile_layers(layer_name):
            return layer.get_tile_by_coordinate(x, y)
        return None

    def get_tile_by_point(self, layer_name: str, world_x: float,
                          world_y: float) -> Optional[TileCell]:
        for layer in self.get_tile_layers(layer_name):
            return layer.get_tile_by_point(world_x, world_y)
        return None

    def get_tiles_by_coordinate(self, x: int, y: int) -> List[TileCell]:
        """Cells at (x, y) across every tile layer, in paint order."""
        cells = [layer.get_tile_by_coordinate(x, y) for layer in self.get_tile_layers()]
        return [c for c in cells if c is not None]

    def get_tiles_by_point(self, world_x: float, world_y: float) -> List[TileCell]:
        cells = [layer.get_tile_by_point(world_x, world_y) for layer in self.get_tile_layers()]
        return [c for c in cells if c is not None]

    # objects and entities

    def get_objects_by_name(self, name: str) -> List[MapObject]:
        return [o for layer in self.get_object_layers() for o in layer.get_objects_by_name(name)]

    def get_objects_by_class_name(self, class_name: str) -> List[MapObject]:
        return [o for layer in self.get_object_layers()
                for o in layer.get_objects_by_class_name(class_name)]

    def get_objects_by_property(self, name: str, value: Any = _UNSET) -> List[MapObject]:
        return [o for layer in self.get_object_layers()
                for o in layer.get_objects_by_property(name, value)]

    def get_entities_by_name(self, name: str) -> List[Any]:
        return [e for layer in self.get_object_layers() for e in layer.get_entities_by_name(name)]

    def get_entities_by_class_name(self, class_name: str) -> List[Any]:
        return [e for layer in self.get_object_layers()
                for e in layer.get_entities_by_class_name(class_name)]

    def get_entities_by_property(self, name: str, value: Any = _UNSET) -> List[Any]:
        return [e for layer in self.get_object_layers()
                for e in layer.get_entities_by_property(name, value)]

    def get_entity_by_object(self, obj: MapObject) -> Optional[Any]:
        for layer in self.get_object_layers():
            entity = layer.get_entity_by_object(obj)
            if entity is not None:
                return entity
        return None

    def get_object_by_entity(self, entity: Any) -> Optional[MapObject]:
        for layer in self.get_object_layers():
            obj = layer.get_object_by_entity(entity)
            if obj is not None:
                return obj
        return None

    def get_templates(self) -> List[MapObject]:
        """Every object placed from a template, across object layers."""
        return [o for layer in self.get_object_layers() for o in layer.get_templates()]

    def __repr__(self):
        return f"TiledResource({self.path!r}, state={self.state.value})"
