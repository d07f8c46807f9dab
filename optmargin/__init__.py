"""
optmargin: margin accounting for collateralized option writing
"""

__version__ = "0.1.0"
