# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Persistence adapters."""
