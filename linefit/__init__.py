"""Ground segmentation of 3D point clouds by line fitting in angular segments."""

__version__ = "0.1.0"
__all__ = ["bin", "segment", "segmentation", "cli"]