"""Domain logic: run state, gate evaluation, reports and pipeline config.

Nothing in this package performs I/O beyond reading the pipeline file.
"""
