"""Components V2 layout models and the validating tree builder."""

from .builder import (
    ALLOWED_CHILDREN,
    DEFAULT_LIMITS,
    IS_COMPONENTS_V2,
    ComponentLimits,
    ComponentTree,
    ComponentTreeBuilder,
    build_component_tree,
    build_modal,
)
from .nodes import SELECT_TYPES, TYPE_NAMES, ComponentType

__all__ = [
    "ALLOWED_CHILDREN",
    "DEFAULT_LIMITS",
    "IS_COMPONENTS_V2",
    "ComponentLimits",
    "ComponentTree",
    "ComponentTreeBuilder",
    "ComponentType",
    "SELECT_TYPES",
    "TYPE_NAMES",
    "build_component_tree",
    "build_modal",
]
