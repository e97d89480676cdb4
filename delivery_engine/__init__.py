"""
                Delivery Zone Engine

Resolves free-text delivery addresses to priced delivery zones against an
admin-editable configuration store, with hybrid Mock/Real geocoding.

Version: 4.0.0
License: MIT
"""

__version__ = "4.0.0"
