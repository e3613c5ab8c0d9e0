from typing import Mapping, Optional, Union

from app.core.constants import (
    DEFAULT_LAYER_VERSION,
    FORMULA_SCHEMA_VERSION,
    KPI_SCHEMA_VERSION,
)
from app.schemas.common import ScopeLayer
from app.schemas.ruleset import VersionBlock


def build_version_info(
    per_layer_versions: Optional[Mapping[Union[ScopeLayer, str], Optional[int]]] = None,
) -> VersionBlock:
    """Build the reproducibility block attached to every merged ruleset.

    *per_layer_versions* maps a layer to the highest record version seen
    for it.  Layers that are missing, code-defined or carry ``None`` get
    ``DEFAULT_LAYER_VERSION``.  The block never influences scoring.
    """
    versions = {ScopeLayer(layer): v for layer, v in (per_layer_versions or {}).items()}

    def _version(layer: ScopeLayer) -> int:
        value = versions.get(layer)
        return value if value is not None else DEFAULT_LAYER_VERSION

    return VersionBlock(
        base_version=_version(ScopeLayer.base),
        vertical_version=_version(ScopeLayer.vertical),
        market_version=_version(ScopeLayer.market),
        client_version=_version(ScopeLayer.client),
        kpi_schema_version=KPI_SCHEMA_VERSION,
        formula_schema_version=FORMULA_SCHEMA_VERSION,
    )
