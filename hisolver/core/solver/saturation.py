"""Saturation policies clamping configurations to bounds.

A policy fills a clamped configuration and a per tangent index flag:
-1 at a lower bound, +1 at an upper bound, 0 otherwise.
"""

import numpy as np
from typing import Optional, Sequence, Tuple

from ..models.device import Device


def clamp(lb: float, ub: float, v: float) -> Tuple[float, int]:
    """Clamp v to [lb, ub] and return (clamped value, saturation flag)."""
    if v <= lb:
        return lb, -1
    if v >= ub:
        return ub, 1
    return v, 0


class SaturationBase:
    """Policy that never saturates."""

    def saturate(
        self,
        q: np.ndarray,
        q_sat: Optional[np.ndarray] = None,
        saturation: Optional[np.ndarray] = None,
        nv: Optional[int] = None,
    ) -> Tuple[np.ndarray, np.ndarray, bool]:
        """Clamp configuration q.

        Args:
            q: Configuration to clamp
            q_sat: Output buffer for the clamped configuration (may be q itself)
            saturation: Output buffer for the flags, one per tangent index
            nv: Tangent size, used when ``saturation`` is not given

        Returns:
            Tuple of (clamped configuration, flags, whether anything saturated)
        """
        q_sat, saturation = self._buffers(q, q_sat, saturation, nv)
        q_sat[:] = q
        saturation[:] = 0
        return q_sat, saturation, False

    @staticmethod
    def _buffers(q, q_sat, saturation, nv):
        if q_sat is None:
            q_sat = np.array(q, dtype=float, copy=True)
        if saturation is None:
            saturation = np.zeros(len(q) if nv is None else nv, dtype=int)
        return q_sat, saturation

    def to_record(self):
        from ..models.records import BaseSaturationRecord
        return BaseSaturationRecord()

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Bounds(SaturationBase):
    """Fixed per index lower and upper bounds (configuration index = tangent index)."""

    def __init__(self, lb: Sequence[float], ub: Sequence[float]):
        self.lb = np.asarray(lb, dtype=float)
        self.ub = np.asarray(ub, dtype=float)
        if self.lb.shape != self.ub.shape:
            raise ValueError("Lower and upper bounds must have the same size")
        if np.any(self.lb > self.ub):
            raise ValueError("Lower bound above upper bound")

    def saturate(self, q, q_sat=None, saturation=None, nv=None):
        if len(q) != len(self.lb):
            raise ValueError(f"Configuration of size {len(q)} does not match bounds of size {len(self.lb)}")
        q_sat, saturation = self._buffers(q, q_sat, saturation, nv)
        saturated = False
        for i in range(len(q)):
            q_sat[i], saturation[i] = clamp(self.lb[i], self.ub[i], q[i])
            if saturation[i] != 0:
                saturated = True
        return q_sat, saturation, saturated

    def to_record(self):
        from ..models.records import BoundsSaturationRecord
        return BoundsSaturationRecord(lb=self.lb.tolist(), ub=self.ub.tolist())

    def __repr__(self) -> str:
        return f"Bounds(lb={self.lb}, ub={self.ub})"


class DeviceSaturation(SaturationBase):
    """Bounds taken from the position limits of a kinematic model.

    Joints whose configuration is larger than their tangent map the extra
    coordinates to their last tangent index.
    """

    def __init__(self, device: Device):
        self.device = device

    def saturate(self, q, q_sat=None, saturation=None, nv=None):
        device = self.device
        if len(q) != device.nq:
            raise ValueError(f"Configuration of size {len(q)} does not match device nq {device.nq}")
        q_sat, saturation = self._buffers(q, q_sat, saturation, device.nv if nv is None else nv)
        q_sat[:] = q
        saturation[:] = 0
        saturated = False

        for joint in device.joints:
            for j in range(joint.nq):
                iq = joint.idx_q + j
                iv = joint.idx_v + min(j, joint.nv - 1)
                q_sat[iq], s = clamp(joint.lower[j], joint.upper[j], q[iq])
                if s != 0:
                    saturation[iv] = s
                    saturated = True

        ecs = device.extra_config_space
        for k in range(ecs.dimension):
            iq = device.model_nq + k
            iv = device.model_nv + k
            q_sat[iq], saturation[iv] = clamp(ecs.lower[k], ecs.upper[k], q[iq])
            if saturation[iv] != 0:
                saturated = True
        return q_sat, saturation, saturated

    def to_record(self):
        from ..models.records import DeviceSaturationRecord
        return DeviceSaturationRecord(device=self.device)

    def __repr__(self) -> str:
        return f"DeviceSaturation({self.device.name!r})"
