"""
Service layer for the report.

This subpackage contains code that touches the file system: reading input
tables, writing TSV exports and saving figures.
"""
