"""HTTP layer for the investment tracker."""
