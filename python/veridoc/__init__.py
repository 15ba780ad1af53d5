"""Escrow settlement and remote-signing service for VeriDoc consultations."""

__version__ = "0.1.0"
