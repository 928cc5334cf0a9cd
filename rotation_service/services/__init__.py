# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Business logic: calculator, executor, schedulers, notifier."""
