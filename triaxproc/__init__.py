"""
TriaxProc
=========
Post-processing of triaxial permeability experiment recordings.
"""

__version__ = "1.0.0"
