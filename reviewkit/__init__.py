"""review-kit: inspect CI results and reviews of GitHub pull requests."""

__version__ = "0.1.0"
