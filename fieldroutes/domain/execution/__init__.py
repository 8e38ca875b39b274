"""Execution domain: waypoint status state machine and route progress"""
