"""Typed visualization descriptors."""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

ValueFormat = Literal["currency", "percent", "number"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class LabeledValue(_Frozen):
    label: str
    value: float


class SeriesData(_Frozen):
    """Payload shared by bar, line and pie charts."""
    data: List[LabeledValue]
    format: ValueFormat = "number"


class StatComparison(_Frozen):
    value: float
    label: str
    direction: Literal["up", "down", "neutral"]


class StatData(_Frozen):
    value: float
    format: ValueFormat = "number"
    comparison: Optional[StatComparison] = None


class TreemapItem(_Frozen):
    name: str
    value: float


class TreemapData(_Frozen):
    data: List[TreemapItem]
    format: ValueFormat = "number"


class HeatmapCell(_Frozen):
    date: str
    value: float


class HeatmapData(_Frozen):
    data: List[HeatmapCell]
    value_label: str


class StateValue(_Frozen):
    state: str
    value: float


class ChoroplethData(_Frozen):
    data: List[StateValue]
    format: ValueFormat = "number"


class FlowLane(_Frozen):
    origin: str
    destination: str
    value: float


class FlowmapData(_Frozen):
    data: List[FlowLane]
    format: ValueFormat = "number"


class RadarAxis(_Frozen):
    label: str
    value: float
    full_mark: float = 100


class RadarData(_Frozen):
    data: List[RadarAxis]
    value_label: str


class VisualizationBase(_Frozen):
    id: str
    title: str
    subtitle: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)


class BarVisualization(VisualizationBase):
    type: Literal["bar"] = "bar"
    data: SeriesData


class LineVisualization(VisualizationBase):
    type: Literal["line"] = "line"
    data: SeriesData


class PieVisualization(VisualizationBase):
    type: Literal["pie"] = "pie"
    data: SeriesData


class StatVisualization(VisualizationBase):
    type: Literal["stat"] = "stat"
    data: StatData


class TreemapVisualization(VisualizationBase):
    type: Literal["treemap"] = "treemap"
    data: TreemapData


class HeatmapVisualization(VisualizationBase):
    type: Literal["heatmap"] = "heatmap"
    data: HeatmapData


class ChoroplethVisualization(VisualizationBase):
    type: Literal["choropleth"] = "choropleth"
    data: ChoroplethData


class FlowmapVisualization(VisualizationBase):
    type: Literal["flowmap"] = "flowmap"
    data: FlowmapData


class RadarVisualization(VisualizationBase):
    type: Literal["radar"] = "radar"
    data: RadarData


Visualization = Annotated[
    Union[
        BarVisualization,
        LineVisualization,
        PieVisualization,
        StatVisualization,
        TreemapVisualization,
        HeatmapVisualization,
        ChoroplethVisualization,
        FlowmapVisualization,
        RadarVisualization,
    ],
    Field(discriminator="type"),
]

_visualization_adapter: TypeAdapter = TypeAdapter(Visualization)


def parse_visualization(payload: Dict[str, Any]) -> Visualization:
    """Rebuild a typed visualization from its serialized form."""
    return _visualization_adapter.validate_python(payload)
