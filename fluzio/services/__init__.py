"""Mission lifecycle, participation workflow and reward-pricing services."""
