"""
Progress Kernel

Domain core for construction progress tracking:
- Weighted milestone templates per component type
- Append-only milestone event history
- Cached percent-complete that is always re-derivable
- Structured logging and typed errors shared by every layer
"""

__version__ = "0.1.0"
