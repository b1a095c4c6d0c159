"""CSV-backed tile storage and the POI name registry."""
