"""Capacity re-planning use cases."""

from .apply_scaling_use_case import ApplyScalingResponse, ApplyScalingUseCase, ScalingChanges

__all__ = ["ApplyScalingUseCase", "ApplyScalingResponse", "ScalingChanges"]
