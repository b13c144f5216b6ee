"""marketfee — fee and commission engine for a freelance marketplace."""

__version__ = "0.1.0"
