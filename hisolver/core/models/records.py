"""Serializable records for spaces, functions, saturation policies and solvers."""

import math
from typing import Annotated, Any, Dict, List, Literal, Tuple, Type, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..math.liegroup import CartesianProduct, LiegroupSpace, SO2Space, SO3Space, VectorSpace
from .constraints import ComparisonType
from .device import Device
from .functions import AffineFunction, ConfigurationProjection, DifferentiableFunction


RECORD_VERSION = 1


# Spaces

class VectorSpaceRecord(BaseModel):
    type: Literal["vector"] = "vector"
    size: int = Field(ge=0, description="Dimension")


class SO2SpaceRecord(BaseModel):
    type: Literal["so2"] = "so2"


class SO3SpaceRecord(BaseModel):
    type: Literal["so3"] = "so3"


LeafSpaceRecord = Annotated[
    Union[VectorSpaceRecord, SO2SpaceRecord, SO3SpaceRecord],
    Field(discriminator="type"),
]


class ProductSpaceRecord(BaseModel):
    type: Literal["product"] = "product"
    components: List[LeafSpaceRecord] = Field(default_factory=list)


SpaceRecord = Annotated[
    Union[VectorSpaceRecord, SO2SpaceRecord, SO3SpaceRecord, ProductSpaceRecord],
    Field(discriminator="type"),
]


def _leaf_to_record(space: LiegroupSpace):
    if isinstance(space, VectorSpace):
        return VectorSpaceRecord(size=space.nq)
    if isinstance(space, SO2Space):
        return SO2SpaceRecord()
    if isinstance(space, SO3Space):
        return SO3SpaceRecord()
    raise ValueError(f"Cannot serialize space {space.name}")


def space_to_record(space: LiegroupSpace):
    """Describe a space as a record."""
    components = space.components
    if len(components) == 1:
        return _leaf_to_record(components[0])
    return ProductSpaceRecord(components=[_leaf_to_record(c) for c in components])


def space_from_record(record) -> LiegroupSpace:
    """Rebuild a space from its record."""
    if isinstance(record, VectorSpaceRecord):
        return VectorSpace(record.size)
    if isinstance(record, SO2SpaceRecord):
        return SO2Space()
    if isinstance(record, SO3SpaceRecord):
        return SO3Space()
    if isinstance(record, ProductSpaceRecord):
        return CartesianProduct([space_from_record(c) for c in record.components])
    raise ValueError(f"Unknown space record: {record!r}")


# Functions

class AffineFunctionRecord(BaseModel):
    type: Literal["affine"] = "affine"
    name: str
    J: List[List[float]]
    b: List[float]

    @classmethod
    def from_function(cls, f: AffineFunction) -> "AffineFunctionRecord":
        return cls(name=f.name, J=f.J.tolist(), b=f.b.tolist())

    def build(self, input_space: LiegroupSpace) -> AffineFunction:
        return AffineFunction(self.J, self.b, name=self.name, input_space=input_space)


class ProjectionFunctionRecord(BaseModel):
    type: Literal["projection"] = "projection"
    name: str
    indices: List[int]

    @classmethod
    def from_function(cls, f: ConfigurationProjection) -> "ProjectionFunctionRecord":
        return cls(name=f.name, indices=[int(i) for i in f.indices])

    def build(self, input_space: LiegroupSpace) -> ConfigurationProjection:
        return ConfigurationProjection(input_space, self.indices, name=self.name)


class FunctionRegistry:
    """Registry mapping function classes to their record types."""

    _record_types: Dict[str, Type[BaseModel]] = {
        "affine": AffineFunctionRecord,
        "projection": ProjectionFunctionRecord,
    }
    _function_types: Dict[type, str] = {
        AffineFunction: "affine",
        ConfigurationProjection: "projection",
    }

    @classmethod
    def register(cls, function_class: type, record_class: Type[BaseModel]) -> None:
        """Register a record class with a ``type`` literal, ``from_function`` and ``build``."""
        type_name = record_class.model_fields["type"].default
        cls._record_types[type_name] = record_class
        cls._function_types[function_class] = type_name

    @classmethod
    def get_record_class(cls, type_name: str) -> Type[BaseModel]:
        if type_name not in cls._record_types:
            raise ValueError(f"Unknown function type: {type_name}")
        return cls._record_types[type_name]

    @classmethod
    def list_function_types(cls) -> List[str]:
        return list(cls._record_types.keys())

    @classmethod
    def to_record(cls, function: DifferentiableFunction) -> BaseModel:
        type_name = cls._function_types.get(type(function))
        if type_name is None:
            raise ValueError(f"Function {function.name} of type {type(function).__name__} cannot be serialized")
        return cls._record_types[type_name].from_function(function)

    @classmethod
    def create(cls, data: Dict[str, Any], input_space: LiegroupSpace) -> DifferentiableFunction:
        record = cls.get_record_class(data.get("type")).model_validate(data)
        return record.build(input_space)


def function_to_record(function: DifferentiableFunction) -> BaseModel:
    return FunctionRegistry.to_record(function)


# Saturation policies

class BaseSaturationRecord(BaseModel):
    type: Literal["base"] = "base"


class BoundsSaturationRecord(BaseModel):
    model_config = ConfigDict(ser_json_inf_nan="constants")

    type: Literal["bounds"] = "bounds"
    lb: List[float]
    ub: List[float]


class DeviceSaturationRecord(BaseModel):
    model_config = ConfigDict(ser_json_inf_nan="constants")

    type: Literal["device"] = "device"
    device: Device


SaturationRecord = Annotated[
    Union[BaseSaturationRecord, BoundsSaturationRecord, DeviceSaturationRecord],
    Field(discriminator="type"),
]


def create_saturation(record):
    """Rebuild a saturation policy from its record."""
    from ..solver.saturation import Bounds, DeviceSaturation, SaturationBase

    if isinstance(record, BaseSaturationRecord):
        return SaturationBase()
    if isinstance(record, BoundsSaturationRecord):
        return Bounds(record.lb, record.ub)
    if isinstance(record, DeviceSaturationRecord):
        return DeviceSaturation(record.device)
    raise ValueError(f"Unknown saturation record: {record!r}")


# Solver

class ConstraintRecord(BaseModel):
    """One registered constraint and its priority."""

    function: Dict[str, Any] = Field(description="Function record, resolved by FunctionRegistry")
    comparison: List[ComparisonType] = Field(description="Comparison type per row")
    active_rows: List[Tuple[int, int]] = Field(default_factory=list, description="Active (start, length) rows")
    priority: int = Field(default=0, ge=0, description="Priority level")


class SolverRecord(BaseModel):
    """Persisted state of a hierarchical solver.

    Right hand sides are not part of the record.
    """

    model_config = ConfigDict(ser_json_inf_nan="constants")

    version: int = Field(default=RECORD_VERSION, description="Record format version")
    squared_error_threshold: float = Field(gt=0)
    inequality_threshold: float = Field(ge=0)
    max_iterations: int = Field(ge=0)
    config_space: SpaceRecord
    last_is_optional: bool = False
    saturation: SaturationRecord = Field(default_factory=BaseSaturationRecord)
    constraints: List[ConstraintRecord] = Field(default_factory=list)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v):
        if v > RECORD_VERSION:
            raise ValueError(f"Unsupported solver record version {v}")
        return v

    @field_validator("squared_error_threshold", "inequality_threshold")
    @classmethod
    def validate_finite(cls, v):
        if math.isinf(v) or math.isnan(v):
            raise ValueError("Thresholds must be finite")
        return v
