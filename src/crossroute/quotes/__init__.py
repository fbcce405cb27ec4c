"""Quote math, eligibility, selection, and aggregation."""
