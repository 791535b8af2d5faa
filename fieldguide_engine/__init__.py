"""Field guide page layout extraction engine.

This package focuses on turning scanned field-guide pages into:
- <page>_layout.json (entry names + photo/caption areas)
- per-entry photo and caption crops
- optional layout overlay images and an Anki package

Page capture (browser screenshots) is out of scope.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
