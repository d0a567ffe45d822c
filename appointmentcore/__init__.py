"""
appointmentcore - appointment scheduling core for small-business bookings.
"""

__version__ = "0.1.0"
