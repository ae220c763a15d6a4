"""Council service layer."""
