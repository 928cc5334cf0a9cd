# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Configuration, logging, errors, database and dependency wiring."""
