"""HandDepth — depth point clouds and hand landmark mapping around an inference engine."""

__version__ = "0.1.0"
