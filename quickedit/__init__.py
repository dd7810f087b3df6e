"""
QuickEdit - Automated video style editing

Submit a video with a style, intensity and quality; a background pipeline
grades, cuts, captions and re-encodes it with FFmpeg while clients poll
for progress.
"""

__version__ = "0.3.0"
__author__ = "QuickEdit Contributors"
__license__ = "MIT"
