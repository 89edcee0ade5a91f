"""Console entrypoint for the finance tracker."""
