"""
AI Gallery

Catalogs a folder of images and enriches every image with a title, a
description and tags generated by a local vision-language model (Ollama).
The metadata is kept in a SQLite database next to the images.
"""

__version__ = "1.0.0"
__author__ = "AI Gallery Team"
