"""
gcqc: GC-content and base-composition QC for sequencing read sets.
"""
__version__ = "0.3.0"
