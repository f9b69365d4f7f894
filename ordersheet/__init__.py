# Order sheet engine
# Normalizes order spreadsheets into canonical records and renders them into
# manufacturer- and channel-specific layouts.

__version__ = "0.1.0"
