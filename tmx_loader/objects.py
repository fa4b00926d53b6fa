"""
Friendly map objects.

One MapObject class covers every Tiled object; 'kind' says which one it is
(copied from the validated document, never re-sniffed):

    point      x, y only
    rectangle  x, y, width, height
    ellipse    x, y, width, height
    polygon    points, relative to (x, y)
    polyline   points, relative to (x, y)
    text       text (TextInfo)
    tile       gid (inserted tile, flip flags included)
    template   template + the merged fields of the template's object
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

import numpy as np

from .properties import PropertyBag, map_props
from .schema import TiledObject, TiledText

if TYPE_CHECKING:
    from .template import Template


# Fields a template instance may override on its template's object
OVERRIDABLE_FIELDS = (
    'name', 'width', 'height', 'rotation', 'visible', 'gid', 'text',
    'point', 'ellipse', 'polygon', 'polyline',
)


@dataclass
class TextInfo:
    """Text object attributes with Tiled's defaults filled in."""
    text: str = ''
    font_family: str = 'sans-serif'
    pixel_size: int = 16
    color: str = '#000000'
    wrap: bool = False
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikeout: bool = False
    kerning: bool = True
    halign: str = 'left'
    valign: str = 'top'

    @classmethod
    def from_document(cls, text: TiledText) -> 'TextInfo':
        info = cls(text=text.text)
        if text.fontfamily is not None:
            info.font_family = text.fontfamily
        if text.pixelsize is not None:
            info.pixel_size = text.pixelsize
        if text.color is not None:
            info.color = text.color
        for name in ('wrap', 'bold', 'italic', 'underline', 'strikeout',
                     'kerning', 'halign', 'valign'):
            value = getattr(text, name)
            if value is not None:
                setattr(info, name, value)
        return info


@dataclass(eq=False)
class MapObject:
    """
    A Tiled object in friendly form.

    Compared by identity, so objects can be used as dict keys and two
    identical rectangles stay two objects.
    """
    id: int
    kind: str
    x: float = 0.0
    y: float = 0.0
    name: str = ''
    class_: Optional[str] = None
    width: float = 0.0
    height: float = 0.0
    rotation: float = 0.0
    visible: bool = True
    gid: Optional[int] = None
    points: Optional[np.ndarray] = None
    text: Optional[TextInfo] = None
    properties: PropertyBag = field(default_factory=dict)
    template: Optional['Template'] = None
    source: Optional[TiledObject] = None

    @classmethod
    def from_document(cls, obj: TiledObject) -> 'MapObject':
        """Build from a validated object (not a template instance)."""
        points = None
        if obj.polygon is not None:
            points = np.array([[p.x, p.y] for p in obj.polygon], dtype=float).reshape(-1, 2)
        elif obj.polyline is not None:
            points = np.array([[p.x, p.y] for p in obj.polyline], dtype=float).reshape(-1, 2)

        return cls(
            id=obj.id if obj.id is not None else -1,
            kind=obj.kind,
            x=obj.x,
            y=obj.y,
            name=obj.name or '',
            class_=obj.class_,
            width=obj.width or 0.0,
            height=obj.height or 0.0,
            rotation=obj.rotation or 0.0,
            visible=obj.visible if obj.visible is not None else True,
            gid=obj.gid or None,
            points=points,
            text=TextInfo.from_document(obj.text) if obj.text is not None else None,
            properties=map_props(obj.properties),
            source=obj,
        )

    @classmethod
    def from_template_instance(cls, instance: TiledObject,
                               template: 'Template') -> 'MapObject':
        """
        Merge a template instance with its template.

        Fields the instance sets win; everything else comes from the
        template's object. Properties are merged by name, instance last.
        """
        base = template.object.source
        merged = base.model_dump(by_alias=False)
        for name in OVERRIDABLE_FIELDS:
            value = getattr(instance, name)
            if name in instance.model_fields_set and value is not None:
                merged[name] = instance.model_dump(include={name})[name]

        shape = TiledObject.model_validate(merged, context={'strict': False})
        obj = cls.from_document(shape)
        obj.kind = 'template'
        obj.id = instance.id if instance.id is not None else -1
        obj.x = instance.x
        obj.y = instance.y
        obj.class_ = instance.class_ or template.object.class_
        obj.properties = {**template.object.properties, **map_props(instance.properties)}
        obj.template = template
        obj.source = instance
        return obj

    @property
    def shape(self) -> str:
        """Kind of the drawn shape; for template instances, the template's kind."""
        if self.kind == 'template' and self.template is not None:
            return self.template.object.kind
        return self.kind

    @property
    def world_points(self) -> Optional[np.ndarray]:
        """Polygon/polyline points offset by the object position."""
        if self.points is None:
            return None
        return self.points + np.array([self.x, self.y])

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def __repr__(self):
        return f"MapObject(id={self.id}, kind={self.kind!r}, name={self.name!r})"


def parse_objects(objects: List[TiledObject], templates: Any = None) -> List[MapObject]:
    """
    Build friendly objects from a validated object list.

    templates maps a template reference (as written in the object) to its
    loaded Template; template instances without a loaded template raise
    KeyError.
    """
    result = []
    for obj in objects:
        if obj.kind == 'template':
            result.append(MapObject.from_template_instance(obj, templates[obj.template]))
        else:
            result.append(MapObject.from_document(obj))
    return result
