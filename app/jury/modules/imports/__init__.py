"""
CSV/XLSX imports and downloadable templates.
"""
