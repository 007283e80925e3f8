"""CloudOptimizer: multi-cloud cost analysis and optimization recommendations."""

__version__ = "0.1.0"
