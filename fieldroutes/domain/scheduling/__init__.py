"""Scheduling domain: recurrence engine, occurrence counter and materialization"""
