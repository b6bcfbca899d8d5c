"""Bird's eye view map drawing and YOLO detection post-processing for traffic cameras."""

__version__ = "0.1.0"
__all__ = ["drawing", "birdeye", "yolo", "yolo_node"]