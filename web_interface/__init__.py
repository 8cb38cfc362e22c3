"""
Web interface for the Algo Stepper: Flask REST API plus Socket.IO render events.
"""
