# reclaim: invisible provenance watermarks for images and short videos

__version__ = "1.0.0"
