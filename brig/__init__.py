"""Replicate ZFS datasets between servers over SSH and manage which server owns each."""

__version__ = "0.1.0"