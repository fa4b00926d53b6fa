"""
Canonical document tree for Tiled maps, tilesets and templates.

Both front-ends (XML and JSON) end up here: the JSON dialect is already in
this shape, the XML front-end builds dicts of the same shape first. Models
are validated with a context dict:

    TiledMap.model_validate(data, context={'strict': True})

strict  : every field Tiled always writes must be present
lenient : missing fields get Tiled's defaults, types are still coerced

Tagged unions:

    layers   -> discriminated on the 'type' field
                (tilelayer / objectgroup / imagelayer)
    tilesets -> discriminated on what is present
                (source -> external, image -> single_image, else collection)
    objects  -> 'kind' computed once after validation
                (template, point, ellipse, polygon, polyline, text, tile,
                 rectangle)
"""

from typing import Annotated, Any, ClassVar, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel, ConfigDict, Discriminator, Field, Tag, ValidationInfo,
    field_validator, model_validator,
)

from .log import get_logger

logger = get_logger('schema')


Orientation = Literal['orthogonal', 'isometric', 'staggered', 'hexagonal']
RenderOrder = Literal['right-down', 'right-up', 'left-down', 'left-up']
ObjectAlignment = Literal[
    'unspecified', 'topleft', 'top', 'topright', 'left', 'center', 'right',
    'bottomleft', 'bottom', 'bottomright',
]
ObjectKind = Literal[
    'template', 'point', 'ellipse', 'polygon', 'polyline', 'text', 'tile',
    'rectangle',
]


def is_strict(info: Optional[ValidationInfo]) -> bool:
    """Strict unless the validation context says otherwise."""
    context = getattr(info, 'context', None) or {}
    return bool(context.get('strict', True))


def coerce_bool(value: Any) -> bool:
    """Tiled writes booleans as "true"/"false" or "1"/"0" in XML."""
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1')
    return bool(value)


def coerce_number(value: Any) -> Union[int, float]:
    """'3' -> 3, '1.5' -> 1.5, 2.0 -> 2."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        number = value
    else:
        number = float(value)
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def _resolve_class(owner: str, class_: Optional[str],
                   legacy_type: Optional[str]) -> Optional[str]:
    """'class' wins over the pre-1.9 'type' name for the same thing."""
    if class_ and legacy_type and class_ != legacy_type:
        logger.warning(
            f"{owner} has class {class_!r} and type {legacy_type!r}, "
            f"using class {class_!r}"
        )
    return class_ or legacy_type or None


class TiledModel(BaseModel):
    """Base for every document model."""

    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    # fields Tiled always writes; only enforced in strict mode
    strict_required: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode='before')
    @classmethod
    def _check_required(cls, data: Any, info: ValidationInfo) -> Any:
        if isinstance(data, dict) and cls.strict_required and is_strict(info):
            missing = [key for key in cls.strict_required if key not in data]
            if missing:
                raise ValueError(
                    f"{cls.__name__} is missing required field(s): "
                    f"{', '.join(missing)}"
                )
        return data


# =============================================================================
# PROPERTIES AND SMALL VALUE TYPES
# =============================================================================

class Property(TiledModel):
    """
    One custom property.

    Values are coerced by their declared type, so '5' with type int becomes
    5 whichever format it came from. Untyped properties are strings.
    """
    strict_required: ClassVar[Tuple[str, ...]] = ('name',)

    name: str
    type: str = 'string'
    propertytype: Optional[str] = None
    value: Any = None

    @model_validator(mode='after')
    def _coerce_value(self) -> 'Property':
        value = self.value
        if value is None:
            return self
        if self.type == 'bool':
            self.value = coerce_bool(value)
        elif self.type == 'int':
            self.value = int(coerce_number(value))
        elif self.type == 'float':
            self.value = float(value)
        elif self.type == 'object':
            self.value = int(coerce_number(value))
        elif self.type in ('string', 'file', 'color') and not isinstance(value, str):
            self.value = str(value)
        return self


class Point(TiledModel):
    x: float
    y: float


class Grid(TiledModel):
    orientation: Literal['orthogonal', 'isometric'] = 'orthogonal'
    width: Optional[int] = None
    height: Optional[int] = None


class TiledText(TiledModel):
    """Text object payload; unset attributes mean Tiled's defaults."""
    text: str = ''
    fontfamily: Optional[str] = None
    pixelsize: Optional[int] = None
    color: Optional[str] = None
    wrap: Optional[bool] = None
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Optional[bool] = None
    strikeout: Optional[bool] = None
    kerning: Optional[bool] = None
    halign: Optional[Literal['left', 'center', 'right', 'justify']] = None
    valign: Optional[Literal['top', 'center', 'bottom']] = None


class AnimationFrame(TiledModel):
    strict_required: ClassVar[Tuple[str, ...]] = ('tileid', 'duration')

    tileid: int
    duration: int = 100


# =============================================================================
# OBJECTS
# =============================================================================

class TiledObject(TiledModel):
    """
    A map object. Which payload field is present decides its kind; the kind
    is stored once in 'kind' so nobody has to sniff fields again.

    Template instances only carry what they override (often just id, x, y
    and template), the rest comes from the template document.
    """
    id: Optional[int] = None
    name: Optional[str] = None
    type: Optional[str] = None
    class_: Optional[str] = Field(default=None, alias='class')
    x: float = 0
    y: float = 0
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: Optional[float] = None
    visible: Optional[bool] = None
    gid: Optional[int] = None
    point: Optional[bool] = None
    ellipse: Optional[bool] = None
    polygon: Optional[List[Point]] = None
    polyline: Optional[List[Point]] = None
    text: Optional[TiledText] = None
    template: Optional[str] = None
    properties: List[Property] = Field(default_factory=list)

    kind: ObjectKind = 'rectangle'

    @model_validator(mode='after')
    def _classify(self) -> 'TiledObject':
        resolved = _resolve_class(f"Object {self.id}", self.class_, self.type)
        self.class_ = resolved
        self.type = resolved

        if self.template:
            self.kind = 'template'
        elif self.point:
            self.kind = 'point'
        elif self.ellipse:
            self.kind = 'ellipse'
        elif self.polygon is not None:
            self.kind = 'polygon'
        elif self.polyline is not None:
            self.kind = 'polyline'
        elif self.text is not None:
            self.kind = 'text'
        elif self.gid:
            self.kind = 'tile'
        else:
            self.kind = 'rectangle'
        return self


class ObjectGroup(TiledModel):
    """Object group nested in a tile, used as that tile's collision shapes."""
    type: Literal['objectgroup'] = 'objectgroup'
    id: Optional[int] = None
    name: str = ''
    draworder: str = 'topdown'
    x: float = 0
    y: float = 0
    opacity: float = 1
    visible: bool = True
    objects: List[TiledObject] = Field(default_factory=list)
    properties: List[Property] = Field(default_factory=list)


# =============================================================================
# TILESETS
# =============================================================================

class TiledTile(TiledModel):
    """A tile that carries extra data (class, properties, collision, animation, image)."""
    strict_required: ClassVar[Tuple[str, ...]] = ('id',)

    id: int
    type: Optional[str] = None
    class_: Optional[str] = Field(default=None, alias='class')
    probability: Optional[float] = None
    animation: Optional[List[AnimationFrame]] = None
    objectgroup: Optional[ObjectGroup] = None
    properties: List[Property] = Field(default_factory=list)
    # image collection members
    image: Optional[str] = None
    imagewidth: Optional[int] = None
    imageheight: Optional[int] = None

    @model_validator(mode='after')
    def _resolve_class(self) -> 'TiledTile':
        resolved = _resolve_class(f"Tile {self.id}", self.class_, self.type)
        self.class_ = resolved
        self.type = resolved
        return self


class TilesetExternal(TiledModel):
    """A map's reference to a .tsx/.tsj file."""
    strict_required: ClassVar[Tuple[str, ...]] = ('firstgid', 'source')

    kind: Literal['external'] = 'external'
    firstgid: int = 1
    source: str


class TilesetEmbedded(TiledModel):
    """Fields shared by both embedded tileset variants and tileset files."""
    strict_required: ClassVar[Tuple[str, ...]] = (
        'name', 'columns', 'tilewidth', 'tileheight', 'tilecount',
    )

    name: str = ''
    firstgid: Optional[int] = None
    class_: Optional[str] = Field(default=None, alias='class')
    columns: int = 0
    tilewidth: int = 0
    tileheight: int = 0
    tilecount: int = 0
    spacing: int = 0
    margin: int = 0
    objectalignment: Optional[ObjectAlignment] = None
    tileoffset: Optional[Point] = None
    grid: Optional[Grid] = None
    transparentcolor: Optional[str] = None
    tiles: List[TiledTile] = Field(default_factory=list)
    properties: List[Property] = Field(default_factory=list)
    # only present on standalone tileset documents
    type: Optional[Literal['tileset']] = None
    version: Optional[str] = None
    tiledversion: Optional[str] = None

    @property
    def orientation(self) -> str:
        return self.grid.orientation if self.grid else 'orthogonal'


class TilesetSingleImage(TilesetEmbedded):
    """Every tile is a cell of one shared spritesheet image."""
    kind: Literal['single_image'] = 'single_image'
    image: str
    imagewidth: Optional[int] = None
    imageheight: Optional[int] = None


class TilesetCollection(TilesetEmbedded):
    """Every tile has its own image."""
    kind: Literal['collection'] = 'collection'


def tileset_kind(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        if value.get('source'):
            return 'external'
        return 'single_image' if value.get('image') else 'collection'
    return getattr(value, 'kind', None)


Tileset = Annotated[
    Union[
        Annotated[TilesetExternal, Tag('external')],
        Annotated[TilesetSingleImage, Tag('single_image')],
        Annotated[TilesetCollection, Tag('collection')],
    ],
    Discriminator(tileset_kind),
]

TilesetDocument = Annotated[
    Union[
        Annotated[TilesetSingleImage, Tag('single_image')],
        Annotated[TilesetCollection, Tag('collection')],
    ],
    Discriminator(tileset_kind),
]


# =============================================================================
# LAYERS
# =============================================================================

class LayerBase(TiledModel):
    strict_required: ClassVar[Tuple[str, ...]] = ('id', 'name')

    id: int = 0
    name: str = ''
    class_: Optional[str] = Field(default=None, alias='class')
    x: float = 0
    y: float = 0
    opacity: float = 1
    visible: bool = True
    offsetx: Optional[float] = None
    offsety: Optional[float] = None
    parallaxx: Optional[float] = None
    parallaxy: Optional[float] = None
    tintcolor: Optional[str] = None
    properties: List[Property] = Field(default_factory=list)


class Chunk(TiledModel):
    """Rectangular piece of an infinite tile layer."""
    strict_required: ClassVar[Tuple[str, ...]] = ('x', 'y', 'width', 'height', 'data')

    x: int
    y: int
    width: int
    height: int
    data: Union[str, List[int]] = Field(default_factory=list)


class TileLayer(LayerBase):
    """
    Grid of GIDs. Exactly one of data (finite maps) or chunks (infinite
    maps) is set; 'kind' records which.
    """
    strict_required: ClassVar[Tuple[str, ...]] = ('id', 'name', 'width', 'height')

    type: Literal['tilelayer']
    width: int = 0
    height: int = 0
    encoding: Optional[Literal['csv', 'base64']] = None
    compression: Optional[str] = None
    data: Optional[Union[str, List[int]]] = None
    chunks: Optional[List[Chunk]] = None
    startx: Optional[int] = None
    starty: Optional[int] = None

    kind: Literal['dense', 'chunked'] = 'dense'

    @field_validator('compression', mode='before')
    @classmethod
    def _empty_compression(cls, value: Any) -> Any:
        return value or None

    @model_validator(mode='after')
    def _check_payload(self, info: ValidationInfo) -> 'TileLayer':
        if self.data is not None and self.chunks is not None:
            raise ValueError(
                f"Tile layer {self.name!r} has both data and chunks"
            )
        if self.chunks is not None:
            self.kind = 'chunked'
            if self.startx is None:
                self.startx = min((c.x for c in self.chunks), default=0)
            if self.starty is None:
                self.starty = min((c.y for c in self.chunks), default=0)
        else:
            if self.data is None:
                if is_strict(info):
                    raise ValueError(f"Tile layer {self.name!r} has no data")
                self.data = []
            self.kind = 'dense'
        return self


class ObjectLayer(LayerBase):
    type: Literal['objectgroup']
    draworder: str = 'topdown'
    color: Optional[str] = None
    objects: List[TiledObject] = Field(default_factory=list)


class ImageLayer(LayerBase):
    type: Literal['imagelayer']
    image: Optional[str] = None
    repeatx: Optional[bool] = None
    repeaty: Optional[bool] = None
    transparentcolor: Optional[str] = None


Layer = Annotated[
    Union[TileLayer, ObjectLayer, ImageLayer],
    Field(discriminator='type'),
]


# =============================================================================
# DOCUMENTS
# =============================================================================

class TiledTemplate(TiledModel):
    """A .tx/.tj document: one object and, for tile objects, its tileset."""
    strict_required: ClassVar[Tuple[str, ...]] = ('object',)

    type: Literal['template'] = 'template'
    version: Optional[str] = None
    tiledversion: Optional[str] = None
    object: TiledObject
    tileset: Optional[TilesetExternal] = None

    @field_validator('version', 'tiledversion', mode='before')
    @classmethod
    def _version_as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class TiledMap(TiledModel):
    """
    Root document. layers is already flat: group layers are hoisted into
    this list by the parser, in document order.
    """
    strict_required: ClassVar[Tuple[str, ...]] = (
        'version', 'tiledversion', 'orientation', 'width', 'height',
        'tilewidth', 'tileheight', 'infinite', 'layers', 'tilesets',
    )

    type: Literal['map'] = 'map'
    class_: Optional[str] = Field(default=None, alias='class')
    version: str = ''
    tiledversion: str = ''
    orientation: Orientation = 'orthogonal'
    renderorder: RenderOrder = 'right-down'
    width: int = 0
    height: int = 0
    tilewidth: int
    tileheight: int
    infinite: bool = False
    compressionlevel: Optional[int] = None
    nextlayerid: Optional[int] = None
    nextobjectid: Optional[int] = None
    parallaxoriginx: Optional[float] = None
    parallaxoriginy: Optional[float] = None
    hexsidelength: Optional[int] = None
    staggeraxis: Optional[Literal['x', 'y']] = None
    staggerindex: Optional[Literal['odd', 'even']] = None
    backgroundcolor: Optional[str] = None
    layers: List[Layer] = Field(default_factory=list)
    tilesets: List[Tileset] = Field(default_factory=list)
    properties: List[Property] = Field(default_factory=list)

    @field_validator('tilewidth', 'tileheight')
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('tile size must be greater than 0')
        return value

    @model_validator(mode='after')
    def _check_tilesets(self, info: ValidationInfo) -> 'TiledMap':
        if not is_strict(info):
            return self
        previous = None
        for index, tileset in enumerate(self.tilesets):
            firstgid = tileset.firstgid
            if firstgid is None:
                raise ValueError(f"tilesets.{index} has no firstgid")
            if previous is not None:
                prev_first, prev_count = previous
                if firstgid <= prev_first:
                    raise ValueError(
                        f"tilesets.{index} firstgid {firstgid} is not greater "
                        f"than the previous firstgid {prev_first}"
                    )
                if prev_count and prev_first + prev_count > firstgid:
                    raise ValueError(
                        f"tilesets.{index} firstgid {firstgid} overlaps the "
                        f"previous tileset's {prev_count} tiles"
                    )
            count = 0 if isinstance(tileset, TilesetExternal) else tileset.tilecount
            previous = (firstgid, count)
        return self
