"""
MetaVault allocation engine.

An aggregating vault that fans deposits out across synchronous and
asynchronous sub-vaults ("targets") while keeping one consistent view of
total, idle, pending and claimable assets.
"""

__version__ = "1.0.0"
