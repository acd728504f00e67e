"""Bulk spreadsheet import pipeline for the back-office record stores.

Upload -> SaveMapping -> Execute. See ``backoffice_import.services.pipeline``.
"""

__version__ = "0.3.0"
