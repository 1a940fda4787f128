"""
activeftp - Active-mode file transfer over a dual-channel protocol

A client and a server exchanging commands over a persistent control
connection and moving file bytes over short-lived, per-transfer data
connections opened in active mode (the client listens, the server
connects out).
"""

__version__ = '1.0.0'
