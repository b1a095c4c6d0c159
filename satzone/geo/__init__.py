"""Geometry: lon/lat math, region model, spatial grid and containment tests."""
