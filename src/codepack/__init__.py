"""codepack: package a source tree into a single document for LLM consumption."""

from __future__ import annotations

__version__ = "0.1.0"
