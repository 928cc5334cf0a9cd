# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""On-call rotation scheduling service."""
