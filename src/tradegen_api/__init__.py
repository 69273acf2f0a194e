"""HTTP surface for the trade signal pipeline."""
