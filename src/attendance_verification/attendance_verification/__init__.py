"""Attendance Verification package.

Face + geofence verified check-in/check-out for employees. Organized by
feature modules (geofence, verification, attendance, users) with a thin Flask
controller layer over service/repository layers.
"""
