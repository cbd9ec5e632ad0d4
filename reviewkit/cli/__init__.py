"""review-kit command line interface."""
