"""
Configuration for TiledResource.

    options = TiledResourceOptions(
        headless=True,
        path_map=[PathMapRule('terrain.png', '/assets/terrain.png')],
        layer_config={'Walls': LayerConfig(is_solid=True)},
    )
    resource = TiledResource('maps/level1.tmx', options)
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .paths import PathMapRule


# Newest Tiled release this loader has been checked against; older
# documents load with a VersionMismatch warning
SUPPORTED_TILED_VERSION = '1.10.1'

MAP_FORMATS = ('TMX', 'TMJ')


@dataclass
class LayerConfig:
    """
    Per-layer overrides, keyed by layer name or layer id.

    is_solid           : mark every tile of a tile layer solid (None means
                         follow the layer's 'solid' property)
    use_tile_colliders : attach the tileset's per-tile collision shapes
    """
    is_solid: Optional[bool] = None
    use_tile_colliders: bool = True


@dataclass
class TiledResourceOptions:
    """
    Every knob of a map load.

    Parameters:
    -----------
    strict : bool
        Validate documents against the full schema (default True)
    headless : bool
        Skip image loading entirely, sprites keep their source rectangles
    start_z_index : int
        Depth of the first layer; later layers count up from here
    path_map : list of PathMapRule
        Ordered remapping rules consulted before every fetch
    file_loader : callable, optional
        async (path, kind) -> text/bytes/dict; defaults to the filesystem
    image_loader : callable, optional
        path -> image handle with an async load(); defaults to ImageSource
    map_format_override : 'TMX' or 'TMJ', optional
        Force the map format instead of sniffing the extension
    layer_config : dict
        LayerConfig per layer name or id
    entity_class_name_factories : dict
        Initial factory table, class name -> callback(FactoryProps)
    """
    strict: bool = True
    headless: bool = False
    start_z_index: int = 0
    path_map: List[PathMapRule] = field(default_factory=list)
    file_loader: Optional[Callable[..., Any]] = None
    image_loader: Optional[Callable[[str], Any]] = None
    map_format_override: Optional[str] = None
    layer_config: Dict[Union[str, int], LayerConfig] = field(default_factory=dict)
    entity_class_name_factories: Dict[str, Callable[..., Any]] = field(default_factory=dict)

    def __post_init__(self):
        if self.map_format_override is not None:
            fmt = self.map_format_override.upper()
            if fmt not in MAP_FORMATS:
                raise ValueError(
                    f"map_format_override must be one of {MAP_FORMATS}, "
                    f"got {self.map_format_override!r}"
                )
            self.map_format_override = fmt

    def config_for_layer(self, name: str, layer_id: Optional[int]) -> Optional[LayerConfig]:
        if name in self.layer_config:
            return self.layer_config[name]
        if layer_id is not None and layer_id in self.layer_config:
            return self.layer_config[layer_id]
        return None
