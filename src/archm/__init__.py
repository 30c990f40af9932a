"""Archive machine: date-bucketed transfer pipeline with optional archive extraction."""
