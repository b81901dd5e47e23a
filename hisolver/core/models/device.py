"""Kinematic model description: joints, limits and extra configuration space."""

import math
import numpy as np
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..math.liegroup import CartesianProduct, LiegroupSpace, SO2Space, SO3Space, VectorSpace


JointType = Literal["revolute", "prismatic", "continuous", "spherical", "planar", "freeflyer"]


def joint_space(joint_type: str) -> LiegroupSpace:
    """Configuration space of a joint type."""
    if joint_type in ("revolute", "prismatic"):
        return VectorSpace(1)
    if joint_type == "continuous":
        return SO2Space()
    if joint_type == "spherical":
        return SO3Space()
    if joint_type == "planar":
        return CartesianProduct([VectorSpace(2), SO2Space()])
    if joint_type == "freeflyer":
        return CartesianProduct([VectorSpace(3), SO3Space()])
    raise ValueError(f"Unknown joint type: {joint_type}")


class Joint(BaseModel):
    """Joint of a kinematic chain.

    Position limits have one entry per configuration coordinate and velocity
    limits one entry per tangent coordinate; both default to unbounded.
    """

    model_config = ConfigDict(ser_json_inf_nan="constants")

    name: str = Field(description="Joint name")
    type: JointType = Field(description="Joint type")
    lower: Optional[List[float]] = Field(default=None, description="Lower position limits (nq entries)")
    upper: Optional[List[float]] = Field(default=None, description="Upper position limits (nq entries)")
    velocity_limit: Optional[List[float]] = Field(default=None, description="Velocity limits (nv entries)")
    idx_q: int = Field(default=0, ge=0, description="Offset in the configuration vector")
    idx_v: int = Field(default=0, ge=0, description="Offset in the tangent vector")

    @model_validator(mode="after")
    def fill_limits(self):
        nq, nv = self.nq, self.nv
        if self.lower is None:
            self.lower = [-math.inf] * nq
        if self.upper is None:
            self.upper = [math.inf] * nq
        if self.velocity_limit is None:
            self.velocity_limit = [math.inf] * nv
        if len(self.lower) != nq or len(self.upper) != nq:
            raise ValueError(f"Joint {self.name}: position limits must have {nq} entries")
        if len(self.velocity_limit) != nv:
            raise ValueError(f"Joint {self.name}: velocity limits must have {nv} entries")
        if any(lo > up for lo, up in zip(self.lower, self.upper)):
            raise ValueError(f"Joint {self.name}: lower limit above upper limit")
        return self

    @property
    def space(self) -> LiegroupSpace:
        return joint_space(self.type)

    @property
    def nq(self) -> int:
        return self.space.nq

    @property
    def nv(self) -> int:
        return self.space.nv


class ExtraConfigSpace(BaseModel):
    """Additional vector-space degrees of freedom appended after the joints."""

    model_config = ConfigDict(ser_json_inf_nan="constants")

    dimension: int = Field(default=0, ge=0, description="Number of extra coordinates")
    lower: List[float] = Field(default_factory=list, description="Lower bounds")
    upper: List[float] = Field(default_factory=list, description="Upper bounds")

    @model_validator(mode="after")
    def fill_bounds(self):
        if not self.lower:
            self.lower = [-math.inf] * self.dimension
        if not self.upper:
            self.upper = [math.inf] * self.dimension
        if len(self.lower) != self.dimension or len(self.upper) != self.dimension:
            raise ValueError("Extra config space bounds must match its dimension")
        return self


class Device(BaseModel):
    """Kinematic model: an ordered list of joints plus extra dimensions."""

    model_config = ConfigDict(ser_json_inf_nan="constants")

    name: str = Field(default="device", description="Device name")
    joints: List[Joint] = Field(default_factory=list, description="Joints in configuration order")
    extra_config_space: ExtraConfigSpace = Field(default_factory=ExtraConfigSpace)

    @field_validator("joints")
    @classmethod
    def validate_joint_names(cls, v):
        names = [j.name for j in v]
        if len(set(names)) != len(names):
            raise ValueError("Joint names must be unique")
        return v

    @model_validator(mode="after")
    def assign_offsets(self):
        iq = iv = 0
        for joint in self.joints:
            joint.idx_q = iq
            joint.idx_v = iv
            iq += joint.nq
            iv += joint.nv
        return self

    def add_joint(self, joint: Joint) -> None:
        """Append a joint and compute its offsets."""
        if any(j.name == joint.name for j in self.joints):
            raise ValueError(f"Joint {joint.name} already exists")
        joint.idx_q = self.model_nq
        joint.idx_v = self.model_nv
        self.joints.append(joint)

    def set_extra_config_space(self, dimension: int, lower=None, upper=None) -> None:
        self.extra_config_space = ExtraConfigSpace(
            dimension=dimension, lower=list(lower or []), upper=list(upper or [])
        )

    @property
    def model_nq(self) -> int:
        """Configuration size of the joints only."""
        return sum(j.nq for j in self.joints)

    @property
    def model_nv(self) -> int:
        """Tangent size of the joints only."""
        return sum(j.nv for j in self.joints)

    @property
    def nq(self) -> int:
        return self.model_nq + self.extra_config_space.dimension

    @property
    def nv(self) -> int:
        return self.model_nv + self.extra_config_space.dimension

    @property
    def lower_position_limit(self) -> np.ndarray:
        """Lower limits of the joint coordinates (extra dimensions excluded)."""
        if not self.joints:
            return np.zeros(0)
        return np.concatenate([j.lower for j in self.joints])

    @property
    def upper_position_limit(self) -> np.ndarray:
        if not self.joints:
            return np.zeros(0)
        return np.concatenate([j.upper for j in self.joints])

    @property
    def velocity_limit(self) -> np.ndarray:
        if not self.joints:
            return np.zeros(0)
        return np.concatenate([j.velocity_limit for j in self.joints])

    def configuration_space(self) -> LiegroupSpace:
        """Cartesian product of joint spaces and the extra vector space."""
        spaces = [j.space for j in self.joints]
        spaces.append(VectorSpace(self.extra_config_space.dimension))
        return CartesianProduct(spaces)

    def neutral_configuration(self) -> np.ndarray:
        return self.configuration_space().neutral()
