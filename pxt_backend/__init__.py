"""
Prompt extractor backend: finds generation metadata embedded in images and videos.
"""
