"""BMS Capital loan-origination core"""

__version__ = "0.1.0"
